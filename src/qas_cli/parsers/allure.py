"""Parser for Allure result directories.

Allure adapters write one ``<uuid>-result.json`` file per test next to
container files and attachment blobs. Only the result files are read; each
is parsed on its own, so a broken file is skipped with a warning instead of
failing the whole directory.
"""

from __future__ import annotations

import asyncio
import json
import math
import re
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from qas_cli.core.exceptions import InputError
from qas_cli.core.models import ParserOptions, ResultStatus, TestCaseResult
from qas_cli.logging import get_logger
from qas_cli.markers import format_marker, parse_tcase_url
from qas_cli.parsers.attachments import resolve_attachments
from qas_cli.utils.html import code_block

logger = get_logger(__name__)

RESULT_FILE_SUFFIX = "-result.json"

# Label names used for the folder, highest priority first
FOLDER_LABELS = ("suite", "parentSuite", "feature", "package")

LINK_NAME_MARKER = re.compile(r"\b([A-Z]+)-(\d+)\b")

STATUS_MAP = {
    "passed": ResultStatus.PASSED,
    "failed": ResultStatus.FAILED,
    "broken": ResultStatus.BLOCKED,
    "skipped": ResultStatus.SKIPPED,
    "unknown": ResultStatus.PASSED,
}


class AllureStatusDetails(BaseModel):
    message: str | None = None
    trace: str | None = None
    known: bool | None = None
    muted: bool | None = None
    flaky: bool | None = None


class AllureAttachment(BaseModel):
    name: str
    source: str
    type: str | None = None


class AllureLabel(BaseModel):
    name: str
    value: str


class AllureLink(BaseModel):
    name: str | None = None
    url: str
    type: str | None = None


class AllureResult(BaseModel):
    """Schema of a ``*-result.json`` file (fields used for the upload)."""

    name: str
    status: str
    uuid: str
    start: float
    stop: float
    full_name: str | None = Field(None, alias="fullName")
    status_details: AllureStatusDetails | None = Field(None, alias="statusDetails")
    attachments: list[AllureAttachment] | None = None
    labels: list[AllureLabel] | None = None
    links: list[AllureLink] | None = None


@dataclass
class _PendingResult:
    result: TestCaseResult
    attachment_paths: list[str]


def map_status(status: str) -> ResultStatus:
    """Map an Allure status; ``unknown`` and unrecognized values count as passed."""
    return STATUS_MAP.get(status, ResultStatus.PASSED)


def derive_folder(labels: list[AllureLabel]) -> str:
    values = {}
    for label in labels:
        values.setdefault(label.name, label.value)
    for name in FOLDER_LABELS:
        if name in values:
            return values[name]
    return ""


def calculate_duration(start: float, stop: float) -> float | None:
    duration = stop - start
    if not math.isfinite(duration) or duration < 0:
        return None
    return duration


def marker_from_links(links: list[AllureLink]) -> str | None:
    """Marker from the first ``tms`` link that identifies a test case.

    A link URL pointing at a QA Sphere test case wins over a ``CODE-123``
    pattern in the link name.
    """
    for link in links:
        if link.type != "tms":
            continue

        parsed = parse_tcase_url(link.url) if link.url else None
        if parsed:
            return format_marker(parsed.project, parsed.seq)

        if link.name:
            match = LINK_NAME_MARKER.search(link.name)
            if match:
                return format_marker(match.group(1), int(match.group(2)))
    return None


def apply_marker(name: str, links: list[AllureLink]) -> str:
    marker = marker_from_links(links)
    if not marker or marker in name:
        return name
    return f"{marker}: {name}"


def build_message(
    details: AllureStatusDetails | None, status: ResultStatus, options: ParserOptions
) -> str:
    """Build the HTML message from ``statusDetails``."""
    if details is None:
        return ""

    message = ""
    if options.include_stdout(status) and details.message:
        message += code_block(details.message)
    if options.include_stderr(status) and details.trace:
        message += code_block(details.trace)
    return message


def _load_result(path: Path) -> AllureResult | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return AllureResult.model_validate(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Skipping Allure result", file=path.name, error=str(e))
        return None


def list_result_files(results_dir: Path) -> list[Path]:
    """Result files of a directory, sorted by name for stable output."""
    try:
        entries = sorted(results_dir.iterdir())
    except OSError as e:
        raise InputError(f'Cannot read Allure results directory "{results_dir}": {e}') from e
    return [p for p in entries if p.is_file() and p.name.endswith(RESULT_FILE_SUFFIX)]


async def parse_allure_results(
    results_dir: str | Path,
    attachment_base_dir: str | Path | None,
    options: ParserOptions,
) -> list[TestCaseResult]:
    """Convert an Allure results directory to canonical results.

    Args:
        results_dir: Directory containing ``*-result.json`` files.
        attachment_base_dir: Directory that attachment ``source`` names are
            relative to (normally ``results_dir`` itself).
        options: Output inclusion options.

    Returns:
        One result per valid result file.

    Raises:
        InputError: If the directory cannot be listed.
    """
    pending: list[_PendingResult] = []

    for path in list_result_files(Path(results_dir)):
        parsed = _load_result(path)
        if parsed is None:
            continue

        status = map_status(parsed.status)
        pending.append(
            _PendingResult(
                result=TestCaseResult(
                    name=apply_marker(parsed.name, parsed.links or []),
                    folder=derive_folder(parsed.labels or []),
                    status=status,
                    message=build_message(parsed.status_details, status, options),
                    time_taken=calculate_duration(parsed.start, parsed.stop),
                ),
                attachment_paths=[a.source for a in parsed.attachments or []],
            )
        )

    attachments = await asyncio.gather(
        *(resolve_attachments(p.attachment_paths, attachment_base_dir) for p in pending)
    )
    for item, found in zip(pending, attachments):
        item.result.attachments = found

    return [p.result for p in pending]
