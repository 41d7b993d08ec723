"""
Observation policies — record traffic, optionally without answering.

- monitor:     tag messages from watched channels with their source, keep processing
- listen-only: log and stop
- echo:        log with a level prefix and stop
"""

from __future__ import annotations

from typing import Any

from openclaw.channels.policies.base import (
    PolicyHandler,
    append_log,
    check_string_list,
    iso_timestamp,
    json_line,
)
from openclaw.channels.policies.types import (
    PolicyContext,
    PolicyResult,
    TransformedMessage,
    ValidationResult,
)


def _check_log_path(config: dict[str, Any], errors: list[str]) -> None:
    path = config.get("log_path")
    if not isinstance(path, str):
        errors.append("log_path must be a string")
    elif not path.strip():
        errors.append("log_path cannot be empty")


class MonitorPolicyHandler(PolicyHandler):
    type = "monitor"

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        msg = ctx.message
        if ctx.channel_id not in config.get("monitor_channels", []):
            return PolicyResult(allow=True)

        if config.get("enable_logging") and config.get("log_path"):
            record = {
                "timestamp": iso_timestamp(msg.timestamp),
                "channel_id": ctx.channel_id,
                "account_id": ctx.account_id,
                "message_id": msg.message_id,
                "from": msg.sender,
                "to": msg.to,
                "content": msg.content,
                "type": msg.type,
            }
            await append_log(config["log_path"], json_line(record))

        source = f"{ctx.channel_id}:{ctx.account_id}"
        if msg.sender:
            source += f":{msg.sender}"

        return PolicyResult(
            allow=True,
            transformed_message=TransformedMessage(
                content=f"[from {source}] {msg.content}",
                type=msg.type,
                attachments=list(msg.attachments),
                metadata={
                    **msg.metadata,
                    "monitor_source": {
                        "channel_id": ctx.channel_id,
                        "account_id": ctx.account_id,
                        "sender_id": msg.sender,
                        "original_content": msg.content,
                    },
                },
            ),
            metadata={
                "policy_type": "monitor",
                "source_channel": ctx.channel_id,
                "source_account": ctx.account_id,
            },
        )

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        check_string_list(config, "monitor_channels", errors)
        if "enable_logging" in config and not isinstance(config["enable_logging"], bool):
            errors.append("enable_logging must be a boolean")
        if "log_path" in config and not isinstance(config["log_path"], str):
            errors.append("log_path must be a string")
        if config.get("enable_logging") and not config.get("log_path"):
            errors.append("log_path is required when enable_logging is true")
        return ValidationResult.from_errors(errors)


class ListenOnlyPolicyHandler(PolicyHandler):
    type = "listen-only"

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        if config.get("enable_logging"):
            record = ctx.message.log_record()
            record.update(
                timestamp=iso_timestamp(ctx.message.timestamp),
                channel_id=ctx.channel_id,
                account_id=ctx.account_id,
            )
            await append_log(config["log_path"], json_line(record))
        return PolicyResult(
            allow=False,
            reason="Listen-only mode - message logged but not processed",
        )

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        if not isinstance(config.get("enable_logging"), bool):
            errors.append("enable_logging must be a boolean")
        _check_log_path(config, errors)
        if "trigger_events" in config and not isinstance(config["trigger_events"], bool):
            errors.append("trigger_events must be a boolean")
        return ValidationResult.from_errors(errors)


_LOG_LEVELS = ("debug", "info", "warn", "error")


class EchoPolicyHandler(PolicyHandler):
    type = "echo"

    async def process(self, ctx: PolicyContext) -> PolicyResult:
        config = self._config(ctx)
        record = ctx.message.log_record()
        record.update(channel_id=ctx.channel_id, account_id=ctx.account_id)
        level = str(config.get("log_level", "info")).upper()
        line = f"[{level}] {iso_timestamp(ctx.message.timestamp)} {json_line(record)}"
        await append_log(config["log_path"], line)
        return PolicyResult(
            allow=False,
            reason="Echo mode - message logged but not processed",
        )

    async def validate(self, config: dict[str, Any] | None) -> ValidationResult:
        if config is None:
            return ValidationResult(False, ["Config is required"])
        errors: list[str] = []
        if config.get("log_level") not in _LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(_LOG_LEVELS)}")
        _check_log_path(config, errors)
        return ValidationResult.from_errors(errors)
