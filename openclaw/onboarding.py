"""
Onboarding — provider and model config builders.

Every function takes an ``openclaw.json``-shaped dict and returns a new dict;
the input is never mutated. Key names follow the config file format
(``baseUrl``, ``apiKey``, ``contextWindow`` ...).

Usage::

    cfg = apply_provider_config(cfg, PRESETS["deepseek"])
    cfg = apply_default_model(cfg, PRESETS["deepseek"])
    cfg = apply_auth_profile_config(cfg, "deepseek:default", provider="deepseek", mode="api_key")
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from openclaw.errors import NotFoundError

Config = dict[str, Any]

OPENAI_COMPLETIONS_API = "openai-completions"


@dataclass(frozen=True)
class ModelDefinition:
    id: str
    name: str
    context_window: int
    max_tokens: int
    reasoning: bool = False
    input: tuple[str, ...] = ("text",)
    cost: tuple[float, float, float, float] = (0, 0, 0, 0)   # input, output, cacheRead, cacheWrite

    def to_dict(self) -> dict[str, Any]:
        cost_in, cost_out, cache_read, cache_write = self.cost
        return {
            "id": self.id,
            "name": self.name,
            "reasoning": self.reasoning,
            "input": list(self.input),
            "cost": {"input": cost_in, "output": cost_out, "cacheRead": cache_read, "cacheWrite": cache_write},
            "contextWindow": self.context_window,
            "maxTokens": self.max_tokens,
        }


@dataclass(frozen=True)
class ProviderPreset:
    """A built-in provider: model alias, default model and, optionally, its endpoint."""

    name: str
    provider: str                           # Key under models.providers
    default_model_ref: str                  # "<provider>/<model id>"
    alias: str
    base_url: str | None = None             # None = alias and default model only, no provider entry
    api: str = OPENAI_COMPLETIONS_API
    models: tuple[ModelDefinition, ...] = field(default_factory=tuple)

    @property
    def default_model_id(self) -> str:
        return self.default_model_ref.split("/", 1)[1]


# ---------------------------------------------------------------------------
# Built-in presets
# ---------------------------------------------------------------------------

PRESETS: dict[str, ProviderPreset] = {p.name: p for p in [
    ProviderPreset("zai", "zai", "zai/glm-4.7", "GLM"),
    ProviderPreset("openrouter", "openrouter", "openrouter/auto", "OpenRouter"),
    ProviderPreset(
        "moonshot", "moonshot", "moonshot/kimi-k2-0905-preview", "Kimi K2",
        base_url="https://api.moonshot.ai/v1",
        models=(
            ModelDefinition("kimi-k2-0905-preview", "Kimi K2 0905 Preview", 256000, 8192),
        ),
    ),
    ProviderPreset(
        "deepseek", "deepseek", "deepseek/deepseek-chat", "DeepSeek",
        base_url="https://api.deepseek.com/v1",
        models=(
            ModelDefinition("deepseek-chat", "DeepSeek Chat", 64000, 8192, cost=(0.14, 0.28, 0.014, 0.28)),
            ModelDefinition("deepseek-coder", "DeepSeek Coder", 64000, 8192, cost=(0.14, 0.28, 0.014, 0.28)),
        ),
    ),
    ProviderPreset(
        "qianfan", "baidu", "baidu/ernie-4.0-turbo-8k", "文心",
        base_url="https://aip.baidubce.com/rpc/2.0/ai_custom/v1/wenxinworkshop/chat",
        models=(
            ModelDefinition("ernie-4.0-turbo-8k", "ERNIE 4.0 Turbo 8K", 8192, 2048, cost=(0.03, 0.09, 0, 0)),
            ModelDefinition("ernie-3.5-8k", "ERNIE 3.5 8K", 8192, 2048, cost=(0.012, 0.012, 0, 0)),
            ModelDefinition("ernie-speed-128k", "ERNIE Speed 128K", 128000, 4096),
        ),
    ),
    ProviderPreset(
        "doubao", "doubao", "doubao/doubao-pro-32k", "豆包",
        base_url="https://ark.cn-beijing.volces.com/api/v3",
        models=(
            ModelDefinition("doubao-pro-32k", "Doubao Pro 32K", 32768, 4096, cost=(0.8, 2.0, 0, 0)),
            ModelDefinition("doubao-lite-32k", "Doubao Lite 32K", 32768, 4096, cost=(0.3, 0.6, 0, 0)),
            ModelDefinition("doubao-pro-128k", "Doubao Pro 128K", 131072, 4096, cost=(5.0, 9.0, 0, 0)),
        ),
    ),
    ProviderPreset(
        "hunyuan", "tencent", "tencent/hunyuan-turbo", "混元",
        base_url="https://api.hunyuan.cloud.tencent.com/v1",
        models=(
            ModelDefinition("hunyuan-turbo", "Hunyuan Turbo", 32768, 4096, cost=(0.015, 0.05, 0, 0)),
            ModelDefinition("hunyuan-lite", "Hunyuan Lite", 32768, 4096),
            ModelDefinition("hunyuan-pro", "Hunyuan Pro", 32768, 4096, cost=(0.03, 0.1, 0, 0)),
        ),
    ),
    ProviderPreset(
        "xinghuo", "xinghuo", "xinghuo/spark-pro", "星火",
        base_url="https://spark-api-open.xf-yun.com/v1",
        models=(
            ModelDefinition("spark-pro", "Spark Pro", 8192, 4096, cost=(2.1, 2.1, 0, 0)),
            ModelDefinition("spark-lite", "Spark Lite", 8192, 4096),
            ModelDefinition("spark-max", "Spark Max", 8192, 4096, cost=(5.6, 5.6, 0, 0)),
        ),
    ),
    ProviderPreset(
        "siliconflow", "siliconflow", "siliconflow/qwen-2.5-7b-instruct", "硅基流动",
        base_url="https://api.siliconflow.cn/v1",
        models=(
            ModelDefinition("qwen-2.5-7b-instruct", "Qwen 2.5 7B (Free)", 32768, 8192),
            ModelDefinition("deepseek-v3", "DeepSeek V3 (Free)", 64000, 8192),
            ModelDefinition("glm-4-9b-chat", "GLM-4 9B (Free)", 128000, 4096),
            ModelDefinition("internlm-2.5-7b-chat", "InternLM 2.5 7B (Free)", 32768, 4096),
        ),
    ),
    ProviderPreset(
        "groq", "groq", "groq/llama-3.3-70b-versatile", "Groq",
        base_url="https://api.groq.com/openai/v1",
        models=(
            ModelDefinition("llama-3.3-70b-versatile", "Llama 3.3 70B (Free)", 131072, 32768),
            ModelDefinition("llama-3.1-8b-instant", "Llama 3.1 8B Instant (Free)", 131072, 8192),
            ModelDefinition("deepseek-r1-distill-llama-70b", "DeepSeek R1 Distill 70B (Free)", 8192, 8192, reasoning=True),
            ModelDefinition("mixtral-8x7b-32768", "Mixtral 8x7B (Free)", 32768, 32768),
        ),
    ),
    ProviderPreset(
        "together-ai", "together-ai", "together-ai/meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo", "Together AI",
        base_url="https://api.together.xyz/v1",
        models=(
            ModelDefinition("meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo", "Llama 3.1 8B Instruct Turbo (Free)", 131072, 8192),
            ModelDefinition("meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo", "Llama 3.1 70B Instruct Turbo (Free)", 131072, 8192),
            ModelDefinition("mistralai/Mixtral-8x7B-Instruct-v0.1", "Mixtral 8x7B Instruct (Free)", 32768, 8192),
        ),
    ),
]}


def get_preset(name: str) -> ProviderPreset:
    preset = PRESETS.get(name)
    if preset is None:
        raise NotFoundError(f"Unknown provider preset: {name} (known: {', '.join(PRESETS)})")
    return preset


def _defaults(cfg: Config) -> dict[str, Any]:
    return cfg.setdefault("agents", {}).setdefault("defaults", {})


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def apply_provider_config(cfg: Config, preset: ProviderPreset) -> Config:
    """Register the model alias and merge the provider entry.

    Existing models are kept; the preset's models are appended when the
    default model is missing. An existing API key is trimmed and kept.
    """
    out = copy.deepcopy(cfg)

    models = _defaults(out).setdefault("models", {})
    entry = dict(models.get(preset.default_model_ref) or {})
    if entry.get("alias") is None:
        entry["alias"] = preset.alias
    models[preset.default_model_ref] = entry

    if preset.base_url is None:
        return out

    model_cfg = out.setdefault("models", {})
    model_cfg.setdefault("mode", "merge")
    providers = model_cfg.setdefault("providers", {})

    existing = dict(providers.get(preset.provider) or {})
    existing_models = existing.pop("models", None)
    existing_models = existing_models if isinstance(existing_models, list) else []
    api_key = existing.pop("apiKey", None)

    defaults = [m.to_dict() for m in preset.models]
    if any(m.get("id") == preset.default_model_id for m in existing_models):
        merged = existing_models
    else:
        known = {m.get("id") for m in existing_models}
        merged = existing_models + [m for m in defaults if m["id"] not in known]

    provider = {**existing, "baseUrl": preset.base_url, "api": preset.api}
    if isinstance(api_key, str) and api_key.strip():
        provider["apiKey"] = api_key.strip()
    provider["models"] = merged or defaults
    providers[preset.provider] = provider

    logger.debug(f"[onboarding] Applied provider config for {preset.name}")
    return out


def apply_default_model(cfg: Config, preset: ProviderPreset | str) -> Config:
    """Make the preset's model (or a model ref) the primary; existing fallbacks survive."""
    ref = preset.default_model_ref if isinstance(preset, ProviderPreset) else preset
    out = copy.deepcopy(cfg)
    defaults = _defaults(out)
    existing = defaults.get("model")

    model: dict[str, Any] = {}
    if isinstance(existing, dict) and "fallbacks" in existing:
        model["fallbacks"] = existing["fallbacks"]
    model["primary"] = ref
    defaults["model"] = model
    return out


def apply_preset(cfg: Config, name: str, set_default: bool = True) -> Config:
    preset = get_preset(name)
    out = apply_provider_config(cfg, preset)
    return apply_default_model(out, preset) if set_default else out


def apply_auth_profile_config(
    cfg: Config,
    profile_id: str,
    provider: str,
    mode: str,
    email: str | None = None,
    prefer_profile_first: bool = True,
) -> Config:
    """Add an auth profile.

    ``auth.order`` is only maintained when the provider already has an
    explicit order; otherwise profiles rotate by last use.
    """
    if mode not in ("api_key", "oauth", "token"):
        raise ValueError(f"Invalid auth mode: {mode!r}")

    out = copy.deepcopy(cfg)
    auth = out.setdefault("auth", {})

    profile: dict[str, Any] = {"provider": provider, "mode": mode}
    if email:
        profile["email"] = email
    auth["profiles"] = {**(auth.get("profiles") or {}), profile_id: profile}

    order = auth.get("order") or {}
    existing_order = order.get(provider)
    if existing_order is not None:
        if prefer_profile_first:
            existing_order = [profile_id] + [p for p in existing_order if p != profile_id]
        elif profile_id not in existing_order:
            existing_order = existing_order + [profile_id]
        auth["order"] = {**order, provider: existing_order}
    return out
