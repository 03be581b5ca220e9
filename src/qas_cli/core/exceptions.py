"""Exceptions raised while parsing reports and uploading results."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qas_cli.core.models import TestCaseResult


class QasCliError(Exception):
    """Base class for all errors that abort an upload."""


class InputError(QasCliError):
    """An input file or directory cannot be read or used."""


class ReportParseError(InputError):
    """A report document is malformed or does not match its schema."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source}: {reason}")


class MatchError(QasCliError):
    """Some results do not correspond to any QA Sphere test case."""

    def __init__(self, missing: list[TestCaseResult]):
        self.missing = missing
        super().__init__(f"{len(missing)} test result(s) without a matching test case")


class AttachmentError(QasCliError):
    """Attachments could not be read and uploading them was requested."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"{len(errors)} attachment(s) could not be read")


class QasApiError(QasCliError):
    """The QA Sphere API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.status_code:
            return f"QA Sphere API Error ({self.status_code}): {self.message}"
        return f"QA Sphere API Error: {self.message}"
