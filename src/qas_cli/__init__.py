"""qas-cli - upload automated test results to QA Sphere."""

__version__ = "0.4.0"

from qas_cli.core.models import (
    Attachment,
    ParserOptions,
    ReportType,
    ResultStatus,
    SkipPolicy,
    TestCaseResult,
)

__all__ = [
    "Attachment",
    "ParserOptions",
    "ReportType",
    "ResultStatus",
    "SkipPolicy",
    "TestCaseResult",
]
