"""
Shared pytest fixtures and configuration.
"""
from pathlib import Path

import pytest

from config.settings import reload_settings

ROOT = Path(__file__).resolve().parent.parent
SAMPLES_DIR = ROOT / "samples"


@pytest.fixture(scope="session")
def samples_dir() -> Path:
    return SAMPLES_DIR


@pytest.fixture(scope="session")
def template_path(samples_dir) -> Path:
    """CloudFormation-style sample template"""
    return samples_dir / "template.yml"


@pytest.fixture(scope="session")
def template_text(template_path) -> str:
    return template_path.read_text(encoding="utf-8")


@pytest.fixture(scope="session")
def policy_path(samples_dir):
    """Path of a sample policy by name"""
    def _policy(name: str) -> Path:
        return samples_dir / "policies" / f"{name}.rego"
    return _policy


@pytest.fixture
def write_file(tmp_path):
    """Write ``text`` to ``tmp_path / name`` and return the path"""
    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


# pytest configuration
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests that run the full inference pipeline"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    # tests without a marker are unit tests
    for item in items:
        if not any(item.iter_markers()):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Isolate tests from configuration set in the environment"""
    for key in ("POLICY_QUERY", "INCLUDE_PARTIAL_LOCATIONS", "MAX_DOCUMENT_KB",
                "LOG_FILE", "LOG_CONSOLE", "POLICY_LOCATE_CONFIG"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reload_settings()
    yield
    reload_settings()
