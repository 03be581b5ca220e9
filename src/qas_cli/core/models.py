"""Canonical result model.

Every report parser (JUnit XML, Playwright JSON, Allure, XCResult) converts
its input into a list of ``TestCaseResult`` objects. The upload engine only
ever sees this model, never the runner-specific formats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ReportType(Enum):
    """Supported report formats, keyed by their upload command name."""

    JUNIT = "junit-upload"
    PLAYWRIGHT = "playwright-json-upload"
    ALLURE = "allure-upload"
    XCRESULT = "xcresult-upload"

    @property
    def display_name(self) -> str:
        """Human-readable format name."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ReportType.JUNIT: "JUnit XML",
    ReportType.PLAYWRIGHT: "Playwright JSON",
    ReportType.ALLURE: "Allure results",
    ReportType.XCRESULT: "Xcode XCResult",
}


class ResultStatus(str, Enum):
    """Status of a single test result as understood by QA Sphere."""

    PASSED = "passed"
    FAILED = "failed"
    BLOCKED = "blocked"  # errors, broken tests, expected failures
    SKIPPED = "skipped"


class SkipPolicy(str, Enum):
    """When to leave captured output out of a result message."""

    ON_SUCCESS = "on-success"
    NEVER = "never"


@dataclass(frozen=True)
class ParserOptions:
    """Options shared by all report parsers."""

    skip_stdout: SkipPolicy = SkipPolicy.NEVER
    skip_stderr: SkipPolicy = SkipPolicy.NEVER

    def include_stdout(self, status: ResultStatus) -> bool:
        """Whether stdout-level detail belongs in the message for ``status``."""
        return not (status is ResultStatus.PASSED and self.skip_stdout is SkipPolicy.ON_SUCCESS)

    def include_stderr(self, status: ResultStatus) -> bool:
        """Whether stderr-level detail belongs in the message for ``status``."""
        return not (status is ResultStatus.PASSED and self.skip_stderr is SkipPolicy.ON_SUCCESS)


@dataclass
class Attachment:
    """A file referenced by a test result.

    Exactly one of ``content`` and ``error`` is set. A missing file is kept
    in the list with its error so callers can report it.
    """

    filename: str
    content: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True if the file was read successfully."""
        return self.content is not None


@dataclass
class TestCaseResult:
    """A single normalized test result."""

    __test__ = False  # not a pytest test class

    name: str
    folder: str
    status: ResultStatus
    message: str = ""
    time_taken: float | None = None  # milliseconds
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def attachment_errors(self) -> list[str]:
        """Errors of attachments that could not be read."""
        return [a.error for a in self.attachments if a.error is not None]
