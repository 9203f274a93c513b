"""Tests for the policy-locate command line tool."""

import json

import pytest

from api.cli import main
from config.settings import reload_settings


@pytest.fixture(autouse=True)
def quiet_console(monkeypatch):
    monkeypatch.setenv("LOG_CONSOLE", "false")
    reload_settings()


def test_text_output(capsys, policy_path, template_path):
    exit_code = main(["--policy", str(policy_path("subnet_cidr")), "--document", str(template_path)])

    assert exit_code == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("Results: ")
    assert lines[1:] == [f"{template_path}:16:18"]


def test_json_output(capsys, policy_path, template_path):
    exit_code = main([
        "--policy", str(policy_path("resource_type")),
        "--document", str(template_path),
        "--format", "json",
    ])

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert [loc["line"] for loc in report["locations"]] == [9, 13, 18]


def test_exact_only_drops_partial_locations(capsys, write_file):
    policy = write_file("policy.rego", 'package policy\ndeny[m] { input.service.region != "x"; m := "bad" }\n')
    document = write_file(
        "doc.yaml", "defaults: &d\n  region: eu\nservice:\n  <<: *d\n"
    )

    assert main(["--policy", str(policy), "--document", str(document), "--format", "json"]) == 0
    assert len(json.loads(capsys.readouterr().out)["locations"]) == 1

    assert main(["--policy", str(policy), "--document", str(document), "--format", "json", "--exact-only"]) == 0
    assert json.loads(capsys.readouterr().out)["locations"] == []


def test_errors_exit_with_status_1(capsys, tmp_path, template_path):
    exit_code = main(["--policy", str(tmp_path / "missing.rego"), "--document", str(template_path)])

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("error: ")
