"""Tests for auditomatic.loader: YAML model configs with substitution."""

from __future__ import annotations

from pathlib import Path

import pytest

from auditomatic.config import PROVIDER_PRESETS
from auditomatic.loader import (
    LoaderError,
    _substitute,  # pyright: ignore[reportPrivateUsage]
    load_model_configs,
    load_yaml,
    parse_model_configs,
)

# ---------------------------------------------------------------------------
# _substitute
# ---------------------------------------------------------------------------


class TestSubstitute:
    def test_env_full_match(self) -> None:
        assert _substitute("${KEY}", {"KEY": "v"}, {}) == "v"

    def test_vars_keep_type(self) -> None:
        assert _substitute("${vars.rate}", {}, {"rate": 0.5}) == 0.5

    def test_interpolation(self) -> None:
        assert _substitute("Bearer ${TOKEN}!", {"TOKEN": "abc"}, {}) == "Bearer abc!"

    def test_unresolved_left_as_is(self) -> None:
        assert _substitute("${MISSING}", {}, {}) == "${MISSING}"
        assert _substitute("${vars.nope}", {}, {}) == "${vars.nope}"

    def test_nested(self) -> None:
        data = {"a": ["${X}", {"b": "${X}"}], "n": 3}
        assert _substitute(data, {"X": "1"}, {}) == {"a": ["1", {"b": "1"}], "n": 3}


# ---------------------------------------------------------------------------
# load_yaml
# ---------------------------------------------------------------------------


class TestLoadYaml:
    def test_substitutes_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUDIT_TEST_KEY", "sk-env")
        f = tmp_path / "m.yaml"
        f.write_text("vars:\n  x: 1\nkey: ${AUDIT_TEST_KEY}\nn: ${vars.x}\n")
        assert load_yaml(f) == {"key": "sk-env", "n": 1}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(LoaderError, match="not found"):
            load_yaml(tmp_path / "nope.yaml")

    def test_not_a_dict(self, tmp_path: Path) -> None:
        f = tmp_path / "m.yaml"
        f.write_text("- a\n- b\n")
        with pytest.raises(LoaderError, match="Expected YAML dict"):
            load_yaml(f)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "m.yaml"
        f.write_text("models: [unclosed\n")
        with pytest.raises(LoaderError, match="Invalid YAML"):
            load_yaml(f)


# ---------------------------------------------------------------------------
# parse_model_configs / load_model_configs
# ---------------------------------------------------------------------------


class TestParseModelConfigs:
    def test_preset_provider(self) -> None:
        configs = parse_model_configs({"models": {"gpt-4o-mini": {"provider": "openai", "api_key": "k"}}})
        cfg = configs["gpt-4o-mini"]
        assert cfg.provider == PROVIDER_PRESETS["openai"]
        assert cfg.api_key == "k"
        assert cfg.pricing is None

    def test_default_provider_is_openai(self) -> None:
        configs = parse_model_configs({"models": {"m": {}}})
        assert configs["m"].provider.base_url == "https://api.openai.com/v1"

    def test_custom_provider_section(self) -> None:
        data = {
            "providers": {"local": {"base_url": "http://localhost:8000/v1/", "auth_type": "none"}},
            "models": {"llama": {"provider": "local"}},
        }
        cfg = parse_model_configs(data)["llama"]
        assert cfg.provider.base_url == "http://localhost:8000/v1"
        assert cfg.provider.auth_type == "none"

    def test_custom_provider_shadows_preset(self) -> None:
        data = {
            "providers": {"openai": {"base_url": "https://gateway/v1"}},
            "models": {"m": {"provider": "openai"}},
        }
        assert parse_model_configs(data)["m"].provider.base_url == "https://gateway/v1"

    def test_inline_provider(self) -> None:
        data = {
            "models": {
                "claude": {
                    "provider": {
                        "base_url": "https://proxy.example/v1",
                        "auth_type": "header",
                        "auth_header": "x-api-key",
                    },
                    "api_key": "k",
                }
            }
        }
        cfg = parse_model_configs(data)["claude"]
        assert cfg.provider.auth_header == "x-api-key"

    def test_pricing(self) -> None:
        data = {
            "models": {
                "m": {"pricing": {"input_cost_per_token": 1e-6, "output_cost_per_token": 2e-6}}
            }
        }
        pricing = parse_model_configs(data)["m"].pricing
        assert pricing is not None
        assert pricing.input_cost_per_token == 1e-6
        assert pricing.output_cost_per_token == 2e-6

    def test_unresolved_api_key_dropped(self) -> None:
        configs = parse_model_configs({"models": {"m": {"api_key": "${NOT_SET_ANYWHERE}"}}})
        assert configs["m"].api_key is None

    def test_unknown_provider(self) -> None:
        with pytest.raises(LoaderError, match="unknown provider 'nowhere'"):
            parse_model_configs({"models": {"m": {"provider": "nowhere"}}})

    def test_bad_provider_type(self) -> None:
        with pytest.raises(LoaderError, match="must be a name or a mapping"):
            parse_model_configs({"models": {"m": {"provider": 42}}})

    def test_invalid_provider_entry(self) -> None:
        with pytest.raises(LoaderError, match="Provider 'p' is invalid"):
            parse_model_configs({"providers": {"p": {"base_url": ""}}, "models": {"m": {}}})

    def test_negative_price(self) -> None:
        with pytest.raises(LoaderError, match="Model 'm' is invalid"):
            parse_model_configs({"models": {"m": {"pricing": {"input_cost_per_token": -1}}}})

    def test_scalar_model_entry(self) -> None:
        with pytest.raises(LoaderError, match="Model 'gpt-4o-mini' must be a mapping"):
            parse_model_configs({"models": {"gpt-4o-mini": "openai"}})

    def test_null_model_entry_uses_defaults(self) -> None:
        configs = parse_model_configs({"models": {"m": None}})
        assert configs["m"].provider == PROVIDER_PRESETS["openai"]

    def test_no_models(self) -> None:
        with pytest.raises(LoaderError, match="non-empty 'models'"):
            parse_model_configs({"providers": {}})


class TestLoadModelConfigs:
    def test_from_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUDIT_OPENAI_KEY", "sk-live")
        f = tmp_path / "models.yaml"
        f.write_text(
            "vars:\n"
            "  price_in: 0.00000015\n"
            "models:\n"
            "  gpt-4o-mini:\n"
            "    provider: openai\n"
            "    api_key: ${AUDIT_OPENAI_KEY}\n"
            "    pricing:\n"
            "      input_cost_per_token: ${vars.price_in}\n"
            "      output_cost_per_token: 0.0000006\n"
            "  llama3.2:\n"
            "    provider: ollama\n"
        )
        configs = load_model_configs(f)
        assert set(configs) == {"gpt-4o-mini", "llama3.2"}
        gpt = configs["gpt-4o-mini"]
        assert gpt.api_key == "sk-live"
        assert gpt.pricing is not None
        assert gpt.pricing.input_cost_per_token == pytest.approx(1.5e-7)
        assert configs["llama3.2"].provider.auth_type == "none"
