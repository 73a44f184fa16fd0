import io
import json
import sys

import pytest

import cli
import core
from tar_validator import config


@pytest.fixture(autouse=True)
def isolated_runner(monkeypatch, tmp_path):
    monkeypatch.setattr(core, "_runner", None)
    for key in config.CONFIG_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("TAR_ANALYZER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def run_cli(monkeypatch):
    def _run(*args):
        monkeypatch.setattr(sys, "argv", ["cli.py", *args])
        return cli.main()
    return _run


def test_no_command(run_cli, capsys):
    assert run_cli() == 1
    assert "usage" in capsys.readouterr().out


def test_validate_text(run_cli, capsys, fixture_path):
    assert run_cli("validate", str(fixture_path("CreateCustomerTest.mkd"))) == 0

    out = capsys.readouterr().out
    assert "Status: VALID" in out
    assert "Type: Test Case" in out


def test_validate_json(run_cli, capsys, fixture_path):
    assert run_cli("validate", str(fixture_path("CreateCustomerTest.mkd")), "--format", "json") == 0
    assert json.loads(capsys.readouterr().out)["valid"] is True


def test_validate_invalid_file(run_cli, capsys, tmp_path):
    path = tmp_path / "Broken.mkd"
    path.write_text("# no frontmatter\n")

    assert run_cli("validate", str(path)) == 1
    out = capsys.readouterr().out
    assert "Status: INVALID" in out
    assert "META001" in out


def test_validate_missing_file(run_cli, capsys, tmp_path):
    assert run_cli("validate", str(tmp_path / "missing.mkd")) == 1
    assert capsys.readouterr().err.startswith("Error: Failed to read file")


def test_validate_suite(run_cli, capsys, tmp_path, load_fixture):
    (tmp_path / "Good.mkd").write_text(load_fixture("CreateCustomerTest.mkd"))

    assert run_cli("validate-suite", str(tmp_path), "-f", "json") == 0
    result = json.loads(capsys.readouterr().out)
    assert result["total_files"] == 1
    assert result["invalid_files"] == 0


def test_check_commands_from_stdin(run_cli, capsys, monkeypatch, make_tar):
    monkeypatch.setattr(sys, "stdin", io.StringIO(make_tar("```\nEval 1\n```\n")))

    assert run_cli("check-commands", "-") == 1
    out = capsys.readouterr().out
    assert "CMD006" in out
    assert "Eval" in out


def test_check_aaa(run_cli, capsys, fixture_path):
    assert run_cli("check-aaa", str(fixture_path("CreateCustomerTest.mkd"))) == 0
    assert "Act      yes" in capsys.readouterr().out


def test_rules(run_cli, capsys):
    assert run_cli("rules", "--format", "json") == 0
    assert "command-syntax" in json.loads(capsys.readouterr().out)


def test_analyze(run_cli, capsys, fixture_path):
    assert run_cli("analyze", str(fixture_path("output_not_found.txt"))) == 1

    out = capsys.readouterr().out
    assert "Test CustomerLookupTest FAILED" in out
    assert "# Test Fix Report" in out


def test_analyze_passed(run_cli, capsys, fixture_path):
    assert run_cli("analyze", str(fixture_path("output_suite.txt")), "--format", "json") == 0
    assert json.loads(capsys.readouterr().out)["success"] is True


def test_runner_status_unconfigured(run_cli, capsys):
    assert run_cli("runner-status") == 1
    assert "Configured: False" in capsys.readouterr().out


def test_run_with_fake_interpreter(run_cli, capsys, tmp_path, fixture_path, load_fixture):
    script = tmp_path / "ScriptARest.sh"
    script.write_text(f"#!/bin/sh\ncat '{fixture_path('output_suite.txt')}'\n")
    script.chmod(0o755)
    test_file = tmp_path / "CustomerManagement.mkd"
    test_file.write_text(load_fixture("CreateCustomerTest.mkd"))

    rc = run_cli("run", str(test_file), "--sar-path", str(script), "--server-url", "http://server",
                 "-u", "alice", "-p", "secret")

    assert rc == 0
    out = capsys.readouterr().out
    assert "Test: CustomerManagement" in out
    assert "Status: Passed" in out


def test_run_unconfigured(run_cli, capsys, tmp_path):
    assert run_cli("run", str(tmp_path / "OrderTest.mkd")) == 1
    assert "not configured" in capsys.readouterr().err
