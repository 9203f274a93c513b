"""Tests for configuration loading."""

from api.config import AppConfig
from config.settings import Settings, get_settings, reload_settings
from schemas.locations import InferenceConfig, create_default_config
from services.location_inference import LocationInferrer


def test_defaults_from_app_yaml():
    settings = Settings()
    config = settings.to_inference_config()

    assert config == InferenceConfig()
    assert settings.get("inference", "max_document_kb") == 2048
    assert settings.get_logging_config()["level"] == "DEBUG"  # LOG_LEVEL set by conftest


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("POLICY_QUERY", "data.checks.violations")
    monkeypatch.setenv("INCLUDE_PARTIAL_LOCATIONS", "false")
    monkeypatch.setenv("MAX_DOCUMENT_KB", "64")

    config = Settings().to_inference_config()

    assert config.query == "data.checks.violations"
    assert config.include_partial_locations is False
    assert config.max_document_kb == 64


def test_custom_config_file(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("inference:\n  query: data.custom.deny\nlogging:\n  file: logs/run.jsonl\n", encoding="utf-8")

    settings = Settings(str(path))

    assert settings.to_inference_config().query == "data.custom.deny"
    assert settings.to_inference_config().max_document_kb == 2048
    assert settings.get_logging_config()["file"] == "logs/run.jsonl"


def test_missing_config_file_uses_defaults(tmp_path):
    settings = Settings(str(tmp_path / "absent.yaml"))
    assert settings.get_section("inference") == {}
    assert settings.to_inference_config() == InferenceConfig()


def test_settings_singleton(monkeypatch):
    first = get_settings()
    assert get_settings() is first
    monkeypatch.setenv("POLICY_QUERY", "data.other.deny")
    assert reload_settings().to_inference_config().query == "data.other.deny"


def test_app_config_from_environment(monkeypatch):
    monkeypatch.setenv("API_PORT", "9100")
    monkeypatch.setenv("ALLOW_ORIGINS", "https://a.example, https://b.example")

    config = AppConfig.load()

    assert config.port == 9100
    assert config.allow_origins[-2:] == ("https://a.example", "https://b.example")


def test_default_config_is_shared_by_settings_and_inferrer(tmp_path):
    defaults = create_default_config()

    assert Settings(str(tmp_path / "absent.yaml")).to_inference_config() == defaults
    assert LocationInferrer().config == defaults
    assert defaults.include_partial_locations is True
