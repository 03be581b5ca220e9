"""Tests for the Playwright JSON parser."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import pytest

from qas_cli.core.exceptions import ReportParseError
from qas_cli.core.models import ParserOptions, ResultStatus, SkipPolicy
from qas_cli.parsers.playwright import map_status, parse_playwright_json


def make_test(
    status: str = "expected",
    results: list[dict[str, Any]] | None = None,
    annotations: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "annotations": annotations or [],
        "projectName": "chromium",
        "status": status,
        "results": results if results is not None else [make_result()],
    }


def make_result(**overrides: Any) -> dict[str, Any]:
    result = {
        "status": "passed",
        "duration": 1234,
        "retry": 0,
        "errors": [],
        "stdout": [],
        "stderr": [],
        "attachments": [],
    }
    result.update(overrides)
    return result


def make_report(*suites: dict[str, Any]) -> str:
    return json.dumps({"config": {}, "suites": list(suites), "stats": {}})


NESTED_REPORT = make_report(
    {
        "title": "cart.spec.ts",
        "specs": [{"title": "PRJ-001: Add item", "tests": [make_test()]}],
        "suites": [
            {
                "title": "Checkout",
                "specs": [{"title": "PRJ-002: Pay", "tests": [make_test("unexpected")]}],
                "suites": [
                    {
                        "title": "Guest",
                        "specs": [{"title": "PRJ-003: Pay as guest", "tests": [make_test("flaky")]}],
                    }
                ],
            }
        ],
    },
    {
        "title": "login.spec.ts",
        "specs": [{"title": "PRJ-004: Login", "tests": [make_test("skipped")]}],
    },
)


async def parse(content: str, base_dir: Path | None = None, **options: Any) -> list:
    return await parse_playwright_json(content, base_dir, ParserOptions(**options))


class TestPlaywrightStructure:
    """Tests for suites, names and folders."""

    @pytest.mark.asyncio
    async def test_nested_suites(self) -> None:
        results = await parse(NESTED_REPORT)

        assert [(r.folder, r.name) for r in results] == [
            ("cart.spec.ts", "PRJ-001: Add item"),
            ("cart.spec.ts", "Checkout › PRJ-002: Pay"),
            ("cart.spec.ts", "Checkout › Guest › PRJ-003: Pay as guest"),
            ("login.spec.ts", "PRJ-004: Login"),
        ]

    @pytest.mark.asyncio
    async def test_statuses_and_duration(self) -> None:
        results = await parse(NESTED_REPORT)

        assert [r.status for r in results] == [
            ResultStatus.PASSED,
            ResultStatus.FAILED,
            ResultStatus.PASSED,
            ResultStatus.SKIPPED,
        ]
        assert results[0].time_taken == 1234

    def test_unknown_status_counts_as_passed(self) -> None:
        assert map_status("interrupted") is ResultStatus.PASSED

    @pytest.mark.asyncio
    async def test_spec_without_results_is_skipped(self) -> None:
        report = make_report(
            {
                "title": "a.spec.ts",
                "specs": [
                    {"title": "PRJ-001: no run", "tests": [make_test(results=[])]},
                    {"title": "PRJ-002: ran", "tests": [make_test()]},
                ],
            }
        )

        results = await parse(report)

        assert [r.name for r in results] == ["PRJ-002: ran"]


class TestPlaywrightMarkers:
    """Tests for test case annotations."""

    @pytest.mark.asyncio
    async def test_annotation_marker_is_prefixed(self) -> None:
        annotations = [
            {"type": "Test Case", "description": "https://qas.eu1.qasphere.com/project/PRJ/tcase/12"}
        ]
        report = make_report(
            {
                "title": "a.spec.ts",
                "specs": [{"title": "Login", "tests": [make_test(annotations=annotations)]}],
            }
        )

        results = await parse(report)

        assert results[0].name == "PRJ-012: Login"

    @pytest.mark.asyncio
    async def test_other_annotations_ignored(self) -> None:
        annotations = [{"type": "issue", "description": "https://qas.eu1.qasphere.com/project/PRJ/tcase/12"}]
        report = make_report(
            {
                "title": "a.spec.ts",
                "specs": [{"title": "Login", "tests": [make_test(annotations=annotations)]}],
            }
        )

        results = await parse(report)

        assert results[0].name == "Login"


class TestPlaywrightMessages:
    """Tests for result messages."""

    @pytest.mark.asyncio
    async def test_errors_and_output(self) -> None:
        result = make_result(
            errors=[{"message": "\x1b[31mExpected: <b>\x1b[39m"}],
            stdout=[{"text": "console log"}],
            stderr=[{"buffer": base64.b64encode(b"warning!").decode()}],
        )
        report = make_report(
            {"title": "a.spec.ts", "specs": [{"title": "t", "tests": [make_test("unexpected", [result])]}]}
        )

        results = await parse(report)

        assert results[0].message == (
            "<h4>Errors:</h4><pre><code>Expected: &lt;b&gt;</code></pre>"
            "<h4>Output:</h4><pre><code>console log</code></pre>"
            "<h4>Errors (stderr):</h4><pre><code>warning!</code></pre>"
        )

    @pytest.mark.asyncio
    async def test_last_attempt_with_attempt_note(self) -> None:
        first = make_result(status="failed", errors=[{"message": "first try"}])
        second = make_result(status="passed", duration=10)
        report = make_report(
            {"title": "a.spec.ts", "specs": [{"title": "t", "tests": [make_test("flaky", [first, second])]}]}
        )

        results = await parse(report)

        assert results[0].status is ResultStatus.PASSED
        assert results[0].time_taken == 10
        assert "2 attempts" in results[0].message
        assert "first try" not in results[0].message

    @pytest.mark.asyncio
    async def test_stdout_skipped_for_passed(self) -> None:
        result = make_result(stdout=[{"text": "noise"}])
        report = make_report(
            {"title": "a.spec.ts", "specs": [{"title": "t", "tests": [make_test("expected", [result])]}]}
        )

        results = await parse(report, skip_stdout=SkipPolicy.ON_SUCCESS)

        assert results[0].message == ""


class TestPlaywrightAttachments:
    """Tests for result attachments."""

    @pytest.mark.asyncio
    async def test_absolute_and_relative_paths(self, tmp_path: Path) -> None:
        absolute = tmp_path / "trace.zip"
        absolute.write_bytes(b"zip")
        (tmp_path / "shot.png").write_bytes(b"png")
        result = make_result(
            attachments=[
                {"name": "trace", "contentType": "application/zip", "path": str(absolute)},
                {"name": "screenshot", "contentType": "image/png", "path": "shot.png"},
                {"name": "inline", "contentType": "text/plain", "body": "aGk="},
            ]
        )
        report = make_report(
            {"title": "a.spec.ts", "specs": [{"title": "t", "tests": [make_test("expected", [result])]}]}
        )

        results = await parse(report, tmp_path)

        assert [(a.filename, a.content) for a in results[0].attachments] == [
            ("trace.zip", b"zip"),
            ("shot.png", b"png"),
        ]


class TestPlaywrightErrors:
    """Tests for malformed reports."""

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        with pytest.raises(ReportParseError, match="invalid JSON"):
            await parse("{not json")

    @pytest.mark.asyncio
    async def test_missing_suites(self) -> None:
        with pytest.raises(ReportParseError):
            await parse(json.dumps({"config": {}}))
