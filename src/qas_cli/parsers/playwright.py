"""Parser for Playwright JSON test reports.

Schema as per Playwright's JSON reporter (``reporter: [['json', ...]]``).
Top-level suites (one per spec file) become the result folder, titles of
nested ``describe`` blocks are prefixed to the test name.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from qas_cli.core.exceptions import ReportParseError
from qas_cli.core.models import ParserOptions, ResultStatus, TestCaseResult
from qas_cli.markers import format_marker, parse_tcase_url
from qas_cli.parsers.attachments import resolve_attachments
from qas_cli.utils.html import code_block, strip_ansi

SUITE_SEPARATOR = " › "

STATUS_MAP = {
    "expected": ResultStatus.PASSED,
    "unexpected": ResultStatus.FAILED,
    "flaky": ResultStatus.PASSED,  # passed on a retry
    "skipped": ResultStatus.SKIPPED,
}


class ReportError(BaseModel):
    message: str = ""


class StdioEntry(BaseModel):
    text: str | None = None
    buffer: str | None = None  # base64

    def content(self) -> str:
        if self.text is not None:
            return self.text
        if self.buffer is None:
            return ""
        try:
            return base64.b64decode(self.buffer, validate=True).decode("utf-8", errors="replace")
        except binascii.Error:
            return self.buffer


class Annotation(BaseModel):
    type: str
    description: str | None = None


class ResultAttachment(BaseModel):
    name: str
    content_type: str = Field("", alias="contentType")
    path: str | None = None


class Result(BaseModel):
    status: str | None = None
    duration: float | None = None
    retry: int = 0
    errors: list[ReportError] = Field(default_factory=list)
    stdout: list[StdioEntry] = Field(default_factory=list)
    stderr: list[StdioEntry] = Field(default_factory=list)
    attachments: list[ResultAttachment] = Field(default_factory=list)


class PlaywrightTest(BaseModel):
    annotations: list[Annotation] = Field(default_factory=list)
    project_name: str = Field("", alias="projectName")
    results: list[Result] = Field(default_factory=list)
    status: str = "expected"


class Spec(BaseModel):
    title: str
    tests: list[PlaywrightTest] = Field(default_factory=list)


class Suite(BaseModel):
    title: str
    specs: list[Spec] = Field(default_factory=list)
    suites: list[Suite] = Field(default_factory=list)


class PlaywrightJsonReport(BaseModel):
    suites: list[Suite]


@dataclass
class _PendingResult:
    result: TestCaseResult
    attachment_paths: list[str]


def map_status(status: str) -> ResultStatus:
    """Map a Playwright test outcome; unknown outcomes count as passed."""
    return STATUS_MAP.get(status, ResultStatus.PASSED)


def marker_from_annotations(annotations: list[Annotation]) -> str | None:
    """Marker from a ``test case`` annotation holding a test case URL."""
    for annotation in annotations:
        if "test case" in annotation.type.lower() and annotation.description:
            parsed = parse_tcase_url(annotation.description)
            if parsed:
                return format_marker(parsed.project, parsed.seq)
    return None


def _stdio_blocks(entries: list[StdioEntry]) -> str:
    return "".join(code_block(strip_ansi(entry.content())) for entry in entries)


def build_message(
    result: Result, attempts: int, status: ResultStatus, options: ParserOptions
) -> str:
    """Build the HTML message for the final attempt of a test."""
    message = ""

    if attempts > 1:
        outcome = "passed" if status is ResultStatus.PASSED else "finished"
        message += f"<p><strong>Test {outcome} in {attempts} attempts</strong></p>"

    errors = "".join(code_block(strip_ansi(e.message)) for e in result.errors)
    if errors:
        message += f"<h4>Errors:</h4>{errors}"

    if options.include_stdout(status):
        stdout = _stdio_blocks(result.stdout)
        if stdout:
            message += f"<h4>Output:</h4>{stdout}"

    if options.include_stderr(status):
        stderr = _stdio_blocks(result.stderr)
        if stderr:
            message += f"<h4>Errors (stderr):</h4>{stderr}"

    return message


def _collect(
    suite: Suite,
    folder: str,
    title_prefix: str,
    options: ParserOptions,
    pending: list[_PendingResult],
) -> None:
    """Walk a suite tree depth first, specs before nested suites."""
    for spec in suite.specs:
        if not spec.tests:
            continue
        test = spec.tests[0]
        if not test.results:
            continue
        # Retries produce several results, the last one is the outcome
        result = test.results[-1]
        status = map_status(test.status)

        name = f"{title_prefix}{spec.title}"
        marker = marker_from_annotations(test.annotations)
        if marker:
            # Takes precedence over any marker in the title
            name = f"{marker}: {name}"

        pending.append(
            _PendingResult(
                result=TestCaseResult(
                    name=name,
                    folder=folder,
                    status=status,
                    message=build_message(result, len(test.results), status, options),
                    time_taken=result.duration,
                ),
                attachment_paths=[a.path for a in result.attachments if a.path],
            )
        )

    for nested in suite.suites:
        _collect(nested, folder, f"{title_prefix}{nested.title}{SUITE_SEPARATOR}", options, pending)


async def parse_playwright_json(
    json_content: str,
    attachment_base_dir: str | Path | None,
    options: ParserOptions,
    source: str = "Playwright JSON",
) -> list[TestCaseResult]:
    """Convert a Playwright JSON report to canonical results.

    Args:
        json_content: The JSON report.
        attachment_base_dir: Directory that relative attachment paths are
            resolved against (Playwright itself writes absolute paths).
        options: Output inclusion options.
        source: Name of the input used in error messages.

    Returns:
        One result per spec, in report order.

    Raises:
        ReportParseError: If the document is not a Playwright JSON report.
    """
    try:
        report = PlaywrightJsonReport.model_validate(json.loads(json_content))
    except json.JSONDecodeError as e:
        raise ReportParseError(source, f"invalid JSON: {e}") from e
    except ValidationError as e:
        raise ReportParseError(source, str(e)) from e

    pending: list[_PendingResult] = []
    for suite in report.suites:
        _collect(suite, suite.title, "", options, pending)

    attachments = await asyncio.gather(
        *(resolve_attachments(p.attachment_paths, attachment_base_dir) for p in pending)
    )
    for item, found in zip(pending, attachments):
        item.result.attachments = found

    return [p.result for p in pending]
