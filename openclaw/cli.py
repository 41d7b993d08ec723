"""
openclaw CLI entry point.

Usage:
    openclaw org org:get id=acme --config org.json
    openclaw org org:create id=acme name=Acme level=company --config org.json
    openclaw org --list --config org.json
    openclaw presets
    openclaw onboard deepseek --config ~/.openclaw/openclaw.json --api-key sk-...
    openclaw chat --config gateway.json --user alice

`openclaw org` works on an in-memory copy of --config and never writes it
back; create, delete, add-member and complete only show their result.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from openclaw.config import Settings, setup_logging
from openclaw.errors import OpenClawError
from openclaw.format import format_list

MUTATING_ACTIONS = ("create", "delete", "add-member", "complete")


def _load_json(path: str | None) -> dict[str, Any]:
    if not path:
        return {}
    file = Path(path).expanduser()
    if not file.exists():
        return {}
    return json.loads(file.read_text(encoding="utf-8"))


def _print_json(value: Any) -> None:
    print(json.dumps(value, ensure_ascii=False, indent=2, default=str))


def parse_kv_args(items: list[str]) -> dict[str, str]:
    """``["id=acme", "name=Acme Inc"]`` -> ``{"id": "acme", "name": "Acme Inc"}``."""
    args: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {item!r}")
        args[key.strip()] = value
    return args


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

async def _run_org(args: argparse.Namespace) -> int:
    from openclaw.organization import OrganizationIntegration, build_cli_commands

    integration = OrganizationIntegration()
    config = _load_json(args.config)
    if config:
        result = integration.initialize_from_config(config)
        for error in result.errors:
            print(f"[warn] {error}", file=sys.stderr)

    commands = build_cli_commands(integration)
    if args.list or not args.command:
        print("\n".join(sorted(commands)))
        return 0

    command = commands.get(args.command)
    if command is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    if args.command.partition(":")[2] in MUTATING_ACTIONS:
        print(f"[warn] {args.command} is not saved: --config is only read", file=sys.stderr)

    try:
        _print_json(await command(parse_kv_args(args.args)))
    except KeyError as exc:
        print(f"Missing argument: {exc.args[0]}", file=sys.stderr)
        return 2
    except (OpenClawError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def _run_presets(args: argparse.Namespace) -> int:
    from openclaw.onboarding import PRESETS

    for preset in PRESETS.values():
        models = format_list([m.id for m in preset.models]) if preset.models else "-"
        print(f"{preset.name:<12} {preset.default_model_ref:<60} {preset.alias}  [{models}]")
    return 0


def _run_onboard(args: argparse.Namespace) -> int:
    from openclaw.onboarding import apply_auth_profile_config, apply_preset, get_preset

    try:
        preset = get_preset(args.preset)
    except OpenClawError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    path = Path(args.config).expanduser()
    cfg = _load_json(args.config)
    if args.api_key:
        providers = cfg.setdefault("models", {}).setdefault("providers", {})
        providers.setdefault(preset.provider, {})["apiKey"] = args.api_key

    cfg = apply_preset(cfg, preset.name, set_default=not args.no_default)
    cfg = apply_auth_profile_config(cfg, f"{preset.provider}:default", preset.provider, "api_key")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    logger.info(f"[onboard] {preset.name} written to {path}")
    return 0


async def _run_chat(args: argparse.Namespace) -> int:
    from openclaw.channels import CLIChannel, IncomingMessage
    from openclaw.channels.policies import ChannelBinding
    from openclaw.gateway import Gateway, GatewayConfig, log_messages, rate_limit

    config = _load_json(args.config)
    gateway_config = GatewayConfig(
        agent_id=config.get("agent_id", "main"),
        agent_config=config.get("agent_config", {}),
        bindings=[ChannelBinding.from_dict(b) for b in config.get("bindings", [])],
        deny_channels=config.get("deny_channels", []),
    )

    async def echo_agent(msg: IncomingMessage) -> str:
        return f"[{gateway_config.agent_id}] {msg.text}"

    gateway = Gateway(handler=echo_agent, config=gateway_config)
    gateway.add_channel(CLIChannel(account_id=args.account, user_id=args.user))
    gateway.use(log_messages())
    if args.rate_limit:
        gateway.use(rate_limit(args.rate_limit))

    await gateway.run()
    return 0


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openclaw",
        description="openclaw - agent platform core",
    )
    parser.add_argument("--log-level", default="", help="Override LOG_LEVEL")
    parser.add_argument("--version", action="version", version="openclaw 0.1.0")
    sub = parser.add_subparsers(dest="subcommand", required=True)

    org = sub.add_parser("org", help="Run an organization command (changes are not saved)")
    org.add_argument("command", nargs="?", default="", help="e.g. org:create, team:stats")
    org.add_argument("args", nargs="*", help="key=value arguments")
    org.add_argument("--config", default="", help="JSON file loaded before the command runs")
    org.add_argument("--list", action="store_true", help="List available commands")

    sub.add_parser("presets", help="List built-in model provider presets")

    onboard = sub.add_parser("onboard", help="Add a provider preset to a config file")
    onboard.add_argument("preset", help="Preset name, see `openclaw presets`")
    onboard.add_argument("--config", default="~/.openclaw/openclaw.json", help="Config file to update")
    onboard.add_argument("--api-key", default="", help="Provider API key")
    onboard.add_argument("--no-default", action="store_true", help="Keep the current primary model")

    chat = sub.add_parser("chat", help="Chat through channel-binding policies on stdin/stdout")
    chat.add_argument("--config", default="", help="JSON file with agent_id and bindings")
    chat.add_argument("--user", default="user", help="Sender id of typed messages")
    chat.add_argument("--account", default="default", help="CLI channel account id")
    chat.add_argument("--rate-limit", type=int, default=0, help="Max messages per minute (0 = off)")

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(args.log_level or settings.log_level, settings.log_file)

    if args.subcommand == "org":
        code = asyncio.run(_run_org(args))
    elif args.subcommand == "presets":
        code = _run_presets(args)
    elif args.subcommand == "onboard":
        code = _run_onboard(args)
    else:
        code = asyncio.run(_run_chat(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
