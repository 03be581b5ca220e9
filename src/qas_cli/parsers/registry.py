"""Report parser lookup by report type."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from types import MappingProxyType

from qas_cli.core.models import ParserOptions, ReportType, TestCaseResult
from qas_cli.parsers.allure import parse_allure_results
from qas_cli.parsers.junit import parse_junit_xml
from qas_cli.parsers.playwright import parse_playwright_json
from qas_cli.parsers.xcresult import parse_xcresult

# Parsers take (input, attachment base dir, options). The input is the file
# content for file-based formats and a path for directory-based ones.
Parser = Callable[[str, str | Path | None, ParserOptions], Awaitable[list[TestCaseResult]]]

PARSERS: MappingProxyType[ReportType, Parser] = MappingProxyType(
    {
        ReportType.JUNIT: parse_junit_xml,
        ReportType.PLAYWRIGHT: parse_playwright_json,
        ReportType.ALLURE: parse_allure_results,
        ReportType.XCRESULT: parse_xcresult,
    }
)

# Formats whose input is a directory rather than a single file
DIRECTORY_INPUTS = frozenset({ReportType.ALLURE, ReportType.XCRESULT})


def get_parser(report_type: ReportType) -> Parser:
    return PARSERS[report_type]


def reads_directory(report_type: ReportType) -> bool:
    return report_type in DIRECTORY_INPUTS
