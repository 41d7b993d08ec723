import pytest

from openclaw.errors import NotFoundError
from openclaw.onboarding import (
    PRESETS,
    apply_auth_profile_config,
    apply_default_model,
    apply_preset,
    apply_provider_config,
    get_preset,
)

DEEPSEEK = PRESETS["deepseek"]


def test_presets_cover_known_providers():
    assert set(PRESETS) >= {"zai", "openrouter", "moonshot", "deepseek", "qianfan", "hunyuan", "groq"}
    assert get_preset("qianfan").provider == "baidu"
    assert get_preset("hunyuan").default_model_ref == "tencent/hunyuan-turbo"
    with pytest.raises(NotFoundError, match="Unknown provider preset: nope"):
        get_preset("nope")


def test_model_definition_uses_config_keys():
    model = DEEPSEEK.models[0].to_dict()
    assert model == {
        "id": "deepseek-chat",
        "name": "DeepSeek Chat",
        "reasoning": False,
        "input": ["text"],
        "cost": {"input": 0.14, "output": 0.28, "cacheRead": 0.014, "cacheWrite": 0.28},
        "contextWindow": 64000,
        "maxTokens": 8192,
    }


def test_provider_config_on_empty_config():
    cfg = {}
    out = apply_provider_config(cfg, DEEPSEEK)

    assert cfg == {}
    assert out["agents"]["defaults"]["models"] == {"deepseek/deepseek-chat": {"alias": "DeepSeek"}}
    assert out["models"]["mode"] == "merge"
    provider = out["models"]["providers"]["deepseek"]
    assert provider["baseUrl"] == "https://api.deepseek.com/v1"
    assert provider["api"] == "openai-completions"
    assert [m["id"] for m in provider["models"]] == ["deepseek-chat", "deepseek-coder"]
    assert "apiKey" not in provider


def test_provider_config_merges_existing_entry():
    cfg = {
        "agents": {"defaults": {"models": {"deepseek/deepseek-chat": {"alias": "DS", "params": {"t": 1}}}}},
        "models": {
            "mode": "replace",
            "providers": {"deepseek": {
                "apiKey": "  sk-1  ",
                "headers": {"x": "y"},
                "models": [{"id": "custom"}, {"id": "deepseek-coder", "name": "Mine"}],
            }},
        },
    }
    out = apply_provider_config(cfg, DEEPSEEK)

    assert out["agents"]["defaults"]["models"]["deepseek/deepseek-chat"] == {"alias": "DS", "params": {"t": 1}}
    assert out["models"]["mode"] == "replace"
    provider = out["models"]["providers"]["deepseek"]
    assert provider["apiKey"] == "sk-1"
    assert provider["headers"] == {"x": "y"}
    assert [m["id"] for m in provider["models"]] == ["custom", "deepseek-coder", "deepseek-chat"]
    assert provider["models"][1]["name"] == "Mine"


def test_provider_config_keeps_models_with_default_present():
    models = [{"id": "deepseek-chat", "name": "Pinned"}]
    cfg = {"models": {"providers": {"deepseek": {"models": models, "apiKey": "   "}}}}
    provider = apply_provider_config(cfg, DEEPSEEK)["models"]["providers"]["deepseek"]
    assert provider["models"] == models
    assert "apiKey" not in provider


def test_alias_only_preset():
    out = apply_provider_config({}, PRESETS["zai"])
    assert out == {"agents": {"defaults": {"models": {"zai/glm-4.7": {"alias": "GLM"}}}}}


def test_default_model_keeps_fallbacks():
    cfg = {"agents": {"defaults": {"model": {"primary": "old/model", "fallbacks": ["groq/x"]}}}}
    out = apply_default_model(cfg, DEEPSEEK)
    assert out["agents"]["defaults"]["model"] == {"fallbacks": ["groq/x"], "primary": "deepseek/deepseek-chat"}

    out = apply_default_model({"agents": {"defaults": {"model": "old/model"}}}, "openrouter/auto")
    assert out["agents"]["defaults"]["model"] == {"primary": "openrouter/auto"}


def test_apply_preset():
    out = apply_preset({}, "moonshot")
    assert out["agents"]["defaults"]["model"]["primary"] == "moonshot/kimi-k2-0905-preview"
    assert "model" not in apply_preset({}, "moonshot", set_default=False)["agents"]["defaults"]


def test_auth_profile():
    out = apply_auth_profile_config({}, "deepseek:default", "deepseek", "api_key", email="me@example.com")
    assert out["auth"]["profiles"] == {
        "deepseek:default": {"provider": "deepseek", "mode": "api_key", "email": "me@example.com"},
    }
    assert "order" not in out["auth"]

    with pytest.raises(ValueError):
        apply_auth_profile_config({}, "x", "deepseek", "password")


@pytest.mark.parametrize("prefer,existing,expected", [
    (True, ["old"], ["new", "old"]),
    (True, ["old", "new"], ["new", "old"]),
    (False, ["old"], ["old", "new"]),
    (False, ["new", "old"], ["new", "old"]),
])
def test_auth_order_only_when_present(prefer, existing, expected):
    cfg = {"auth": {"order": {"deepseek": existing, "groq": ["g"]}}}
    out = apply_auth_profile_config(cfg, "new", "deepseek", "token", prefer_profile_first=prefer)
    assert out["auth"]["order"] == {"deepseek": expected, "groq": ["g"]}
    assert cfg["auth"]["order"]["deepseek"] == existing
