"""JUnit XML parser for test reports.

JUnit XML is produced by many runners (JUnit, pytest, Jest with
jest-junit, Go's gotestsum, ...). There is no single schema, so the parser
is lenient: ``type`` attributes are optional, ``<system-out>`` and
``<system-err>`` may be empty, and both ``<testsuites>`` and a bare
``<testsuite>`` are accepted as the document root.
"""

from __future__ import annotations

import asyncio
import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from qas_cli.core.exceptions import ReportParseError
from qas_cli.core.models import ParserOptions, ResultStatus, TestCaseResult
from qas_cli.parsers.attachments import resolve_attachments
from qas_cli.utils.html import code_block

ATTACHMENT_LINE = re.compile(r"^\[\[ATTACHMENT\|(.+)\]\]$")

# Highest priority first
STATUS_ELEMENTS = (
    ("error", ResultStatus.BLOCKED),
    ("failure", ResultStatus.FAILED),
    ("skipped", ResultStatus.SKIPPED),
)


@dataclass
class JUnitTestCase:
    """Represents a single test case from JUnit XML."""

    name: str
    folder: str
    status: ResultStatus = ResultStatus.PASSED
    time_ms: float | None = None
    details: list[str] = field(default_factory=list)  # failure/error/skipped contents
    detail_messages: list[str] = field(default_factory=list)
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)

    def attachment_paths(self) -> list[str]:
        """Paths from ``[[ATTACHMENT|path]]`` lines, without duplicates."""
        paths: list[str] = []
        for text in (*self.stdout, *self.details, *self.detail_messages):
            for line in text.splitlines():
                match = ATTACHMENT_LINE.match(line.strip())
                if match and match.group(1) not in paths:
                    paths.append(match.group(1))
        return paths

    def build_message(self, options: ParserOptions) -> str:
        """Build the HTML message for this test case."""
        message = "".join(code_block(text) for text in self.details)
        if options.include_stdout(self.status):
            message += "".join(code_block(text) for text in self.stdout)
        if options.include_stderr(self.status):
            message += "".join(code_block(text) for text in self.stderr)
        return message


def _element_content(element: ET.Element) -> str:
    """Text content of a result element, falling back to its message."""
    text = (element.text or "").strip()
    if text:
        return text
    return (element.get("message") or "").strip()


def _parse_time(value: str | None) -> float | None:
    """Convert a ``time`` attribute in seconds to milliseconds."""
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds * 1000


class JUnitParser:
    """Parser for JUnit XML reports."""

    @staticmethod
    def parse_string(xml_content: str, source: str = "JUnit XML") -> list[JUnitTestCase]:
        """Parse JUnit XML from string.

        Args:
            xml_content: JUnit XML as string.
            source: Name of the input used in error messages.

        Returns:
            Test cases in document order.

        Raises:
            ReportParseError: If the document is not valid JUnit XML.
        """
        try:
            root = ET.fromstring(xml_content)  # noqa: S314 - trusted test report data
        except ET.ParseError as e:
            raise ReportParseError(source, f"invalid XML: {e}") from e

        if root.tag == "testsuites":
            suites = root.findall("testsuite")
        elif root.tag == "testsuite":
            suites = [root]
        else:
            raise ReportParseError(
                source, f"expected <testsuites> or <testsuite> root element, got <{root.tag}>"
            )

        test_cases = []
        for suite in suites:
            suite_name = suite.get("name", "")
            for testcase in suite.iter("testcase"):
                test_cases.append(JUnitParser._parse_testcase(testcase, suite_name))
        return test_cases

    @staticmethod
    def _parse_testcase(testcase: ET.Element, suite_name: str) -> JUnitTestCase:
        """Parse a testcase element."""
        # classname groups better than the suite for runners that put every
        # test into one suite
        tc = JUnitTestCase(
            name=testcase.get("name", ""),
            folder=testcase.get("classname") or suite_name,
            time_ms=_parse_time(testcase.get("time")),
        )

        for tag, status in STATUS_ELEMENTS:
            elements = testcase.findall(tag)
            if elements:
                tc.status = status
                tc.details = [_element_content(el) for el in elements]
                tc.detail_messages = [el.get("message", "") for el in elements]
                break

        tc.stdout = [el.text or "" for el in testcase.findall("system-out")]
        tc.stderr = [el.text or "" for el in testcase.findall("system-err")]
        return tc


async def parse_junit_xml(
    xml_content: str,
    attachment_base_dir: str | Path | None,
    options: ParserOptions,
    source: str = "JUnit XML",
) -> list[TestCaseResult]:
    """Convert a JUnit XML document to canonical results.

    Args:
        xml_content: The XML document.
        attachment_base_dir: Directory that attachment paths are relative to.
        options: Output inclusion options.
        source: Name of the input used in error messages.

    Returns:
        One result per ``<testcase>`` element.
    """
    test_cases = JUnitParser.parse_string(xml_content, source)

    results = []
    for tc in test_cases:
        results.append(
            TestCaseResult(
                name=tc.name,
                folder=tc.folder,
                status=tc.status,
                message=tc.build_message(options),
                time_taken=tc.time_ms,
            )
        )

    attachments = await asyncio.gather(
        *(resolve_attachments(tc.attachment_paths(), attachment_base_dir) for tc in test_cases)
    )
    for result, found in zip(results, attachments):
        result.attachments = found

    return results
