"""Tests for the qasphere command line."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from qas_cli import __version__
from qas_cli.api import QasApiClient
from qas_cli.cli import app, commands
from qas_cli.core.models import ResultStatus
from tests.factories import BASE_URL, FakeQasApi, make_tcase

runner = CliRunner()

REPORT = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites>
  <testsuite name="Checkout">
    <testcase name="PRJ-001: Login" classname="LoginTest" time="0.2">
      <system-out>logged in</system-out>
    </testcase>
    <testcase name="PRJ-002: Pay" classname="PaymentTest" time="0.4">
      <failure message="declined">card declined</failure>
    </testcase>
  </testsuite>
</testsuites>
"""


@pytest.fixture
def report(tmp_path: Path) -> Path:
    path = tmp_path / "report.xml"
    path.write_text(REPORT, encoding="utf-8")
    return path


@pytest.fixture
def configured(clean_env, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QAS_URL", BASE_URL + "/")
    monkeypatch.setenv("QAS_TOKEN", "secret")
    monkeypatch.setenv("COLUMNS", "200")


@pytest.fixture
def fake_api(monkeypatch: pytest.MonkeyPatch) -> FakeQasApi:
    api = FakeQasApi(tcases=[make_tcase(1), make_tcase(2)])
    calls = []

    def create_client(url: str, token: str) -> FakeQasApi:
        calls.append((url, token))
        return api

    monkeypatch.setattr("qas_cli.cli.commands.create_client", create_client)
    api.client_calls = calls
    return api


class TestHelp:
    """Tests for help and version output."""

    def test_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in (
            "junit-upload",
            "playwright-json-upload",
            "allure-upload",
            "xcresult-upload",
        ):
            assert command in result.output

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert result.output.strip() == f"qasphere {__version__}"

    def test_command_help(self) -> None:
        result = runner.invoke(app, ["junit-upload", "--help"], env={"COLUMNS": "200"})

        assert result.exit_code == 0
        assert "--run-url" in result.output
        assert "--create-tcases" in result.output


class TestUploadCommands:
    """Tests for running upload commands."""

    def test_missing_credentials(self, clean_env, monkeypatch, report: Path) -> None:
        monkeypatch.setenv("COLUMNS", "200")

        result = runner.invoke(app, ["junit-upload", str(report)])

        assert result.exit_code == 1
        assert "QAS_TOKEN, QAS_URL" in result.output

    def test_invalid_skip_value(self, configured, report: Path) -> None:
        result = runner.invoke(
            app, ["junit-upload", "--skip-report-stdout", "always", str(report)]
        )

        assert result.exit_code == 2

    def test_files_required(self, configured) -> None:
        result = runner.invoke(app, ["junit-upload"])

        assert result.exit_code == 2

    def test_upload_to_new_run(self, configured, fake_api: FakeQasApi, report: Path) -> None:
        result = runner.invoke(app, ["junit-upload", str(report)])

        assert result.exit_code == 0, result.output
        assert fake_api.client_calls == [(BASE_URL, "secret")]
        assert fake_api.closed
        assert len(fake_api.created_runs) == 1
        assert [s[3] for s in fake_api.submissions] == [ResultStatus.PASSED, ResultStatus.FAILED]
        assert "Uploaded 2 test cases" in result.output

    def test_upload_to_existing_run(
        self, configured, fake_api: FakeQasApi, report: Path
    ) -> None:
        result = runner.invoke(
            app, ["junit-upload", "-r", f"{BASE_URL}/project/PRJ/run/23", str(report)]
        )

        assert result.exit_code == 0, result.output
        assert fake_api.created_runs == []
        assert {s[1] for s in fake_api.submissions} == {23}

    def test_skip_stdout_on_success(
        self, configured, fake_api: FakeQasApi, report: Path
    ) -> None:
        result = runner.invoke(
            app, ["junit-upload", "--skip-report-stdout", "on-success", str(report)]
        )

        assert result.exit_code == 0, result.output
        passed_comment = fake_api.submissions[0][4]
        failed_comment = fake_api.submissions[1][4]
        assert "logged in" not in passed_comment
        assert "card declined" in failed_comment

    def test_unmatched_exits_with_error(self, configured, report: Path) -> None:
        api = FakeQasApi(tcases=[make_tcase(1)])

        with patch("qas_cli.cli.commands.create_client", return_value=api):
            result = runner.invoke(app, ["junit-upload", str(report)])

        assert result.exit_code == 1
        assert "does not match any test cases" in result.output
        assert api.submissions == []

    def test_unmatched_with_force(self, configured, report: Path) -> None:
        api = FakeQasApi(tcases=[make_tcase(1)])

        with patch("qas_cli.cli.commands.create_client", return_value=api):
            result = runner.invoke(app, ["junit-upload", "--force", str(report)])

        assert result.exit_code == 0, result.output
        assert len(api.submissions) == 1

    def test_missing_report_file(self, configured, fake_api: FakeQasApi, tmp_path: Path) -> None:
        result = runner.invoke(app, ["junit-upload", str(tmp_path / "nope.xml")])

        assert result.exit_code == 1
        assert "Failed to read" in result.output

    def test_malformed_report(self, configured, fake_api: FakeQasApi, tmp_path: Path) -> None:
        path = tmp_path / "broken.xml"
        path.write_text("<testsuites><testsuite>", encoding="utf-8")

        result = runner.invoke(app, ["junit-upload", str(path)])

        assert result.exit_code == 1
        assert "Failed to parse" in result.output

    def test_credentials_from_env_file(
        self, clean_env, fake_api: FakeQasApi, tmp_path: Path, report: Path
    ) -> None:
        (tmp_path / ".qaspherecli").write_text(
            f"QAS_TOKEN=from-file\nQAS_URL={BASE_URL}\n", encoding="utf-8"
        )

        result = runner.invoke(app, ["junit-upload", str(report)])

        assert result.exit_code == 0, result.output
        assert fake_api.client_calls == [(BASE_URL, "from-file")]


class TestCreateClient:
    """Tests for the API client factory used by the commands."""

    def test_builds_api_client(self) -> None:
        client = commands.create_client(BASE_URL, "secret")

        assert isinstance(client, QasApiClient)
        assert client.base_url == BASE_URL
        asyncio.run(client.aclose())
