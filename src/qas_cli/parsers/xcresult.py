"""Parser for Xcode result bundles (``.xcresult``).

Recent Xcode versions keep test results in a SQLite database inside the
bundle (``database.sqlite3``). The database is created lazily by
``xcresulttool``, so it is generated on first use when missing.
Attachment payloads live in ``data/data.<refId>`` and are usually
Zstandard compressed.
"""

from __future__ import annotations

import asyncio
import sqlite3
import subprocess
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path

import zstandard
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from qas_cli.core.exceptions import InputError, ReportParseError
from qas_cli.core.models import Attachment, ParserOptions, ResultStatus, TestCaseResult
from qas_cli.logging import get_logger
from qas_cli.utils.html import escape

logger = get_logger(__name__)

DATABASE_FILE = "database.sqlite3"
DATA_DIR = "data"
DATA_FILE_PREFIX = "data."
IGNORED_ATTACHMENT_PREFIX = "SynthesizedEvent_"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

SUITE_SEPARATOR = " › "
INDENT = "&nbsp;" * 4
EXPORT_TIMEOUT = 300  # seconds

STATUS_MAP = {
    "success": ResultStatus.PASSED,
    "failure": ResultStatus.FAILED,
    "skipped": ResultStatus.SKIPPED,
    "expected failure": ResultStatus.BLOCKED,
}

SUITES_QUERY = text("SELECT rowid AS id, name, parentSuite_fk FROM TestSuites")
TEST_CASES_QUERY = text("SELECT rowid AS id, name, testSuite_fk FROM TestCases")
TEST_CASE_RUNS_QUERY = text(
    "SELECT rowid AS id, testCase_fk, result, skipNotice_fk FROM TestCaseRuns ORDER BY rowid"
)
SKIP_NOTICES_QUERY = text("SELECT rowid AS id, message FROM SkipNotices")
EXPECTED_FAILURES_QUERY = text(
    "SELECT rowid AS id, issue_fk, testCaseRun_fk, failureReason "
    "FROM ExpectedFailures ORDER BY orderInOwner"
)
# Issues without a source location are kept, hence LEFT JOINs
TEST_ISSUES_QUERY = text(
    """
    SELECT ti.rowid AS id, ti.testCaseRun_fk, ti.compactDescription,
           ti.detailedDescription, ti.sanitizedDescription,
           ti.sourceCodeContext_fk, scl.filePath, scl.lineNumber
    FROM TestIssues AS ti
    LEFT JOIN SourceCodeContexts AS scc ON scc.rowid = ti.sourceCodeContext_fk
    LEFT JOIN SourceCodeLocations AS scl ON scl.rowid = scc.location_fk
    ORDER BY ti.testCaseRun_fk, ti.orderInOwner
    """
)
SOURCE_FRAMES_QUERY = text(
    """
    SELECT scf.context_fk, scsi.symbolName, scl.filePath, scl.lineNumber
    FROM SourceCodeFrames AS scf
    INNER JOIN SourceCodeSymbolInfos AS scsi ON scsi.rowid = scf.symbolInfo_fk
    LEFT JOIN SourceCodeLocations AS scl ON scl.rowid = scsi.location_fk
    WHERE scf.symbolInfo_fk IS NOT NULL
    ORDER BY scf.context_fk, scf.orderInContainer
    """
)
ATTACHMENTS_QUERY = text(
    """
    SELECT att.filenameOverride, att.xcResultKitPayloadRefId, act.testCaseRun_fk
    FROM Attachments AS att
    INNER JOIN Activities AS act ON att.activity_fk = act.rowid
    ORDER BY att.rowid
    """
)


@dataclass
class TestIssue:
    __test__ = False  # not a pytest test class

    id: int
    run_id: int | None
    description: str
    context_id: int | None
    file_path: str | None
    line_number: int | None


@dataclass
class SourceFrame:
    symbol: str | None
    file_path: str | None
    line_number: int | None


@dataclass
class ExpectedFailure:
    reason: str
    issue_id: int | None


def map_status(result: str | None) -> ResultStatus:
    """Map a test run result; unrecognized results count as skipped."""
    return STATUS_MAP.get((result or "").lower(), ResultStatus.SKIPPED)


def _location(file_path: str | None, line_number: int | None) -> str:
    if file_path and line_number:
        return f" (at {escape(file_path)}:{line_number})"
    return ""


class SuitePaths:
    """Folder paths of test suites, resolved through parent links.

    Suites are kept in an id map and each path is computed once.
    """

    def __init__(self, rows):
        self._suites = {row.id: (row.name or "", row.parentSuite_fk) for row in rows}
        self._paths: dict[int, str] = {}

    def path(self, suite_id: int | None) -> str | None:
        if suite_id is None or suite_id not in self._suites:
            return None
        if suite_id in self._paths:
            return self._paths[suite_id]

        # Iterative walk up to the root; also guards against parent cycles
        chain = []
        current: int | None = suite_id
        while current is not None and current in self._suites and current not in chain:
            if current in self._paths:
                break
            chain.append(current)
            current = self._suites[current][1]

        prefix = self._paths.get(current, "") if current is not None else ""
        for node in reversed(chain):
            name = self._suites[node][0]
            prefix = f"{prefix}{SUITE_SEPARATOR}{name}" if prefix else name
            self._paths[node] = prefix
        return self._paths[suite_id]


class XCResultDatabase:
    """Read-only view of the tables needed to build results."""

    def __init__(self, conn: Connection):
        self.conn = conn

    def suite_paths(self) -> SuitePaths:
        return SuitePaths(self.conn.execute(SUITES_QUERY))

    def test_cases(self) -> dict[int, tuple[str | None, int | None]]:
        return {row.id: (row.name, row.testSuite_fk) for row in self.conn.execute(TEST_CASES_QUERY)}

    def test_case_runs(self):
        return list(self.conn.execute(TEST_CASE_RUNS_QUERY))

    def skip_notices(self) -> dict[int, str]:
        return {row.id: row.message or "" for row in self.conn.execute(SKIP_NOTICES_QUERY)}

    def expected_failures(self) -> dict[int, list[ExpectedFailure]]:
        by_run: dict[int, list[ExpectedFailure]] = defaultdict(list)
        for row in self.conn.execute(EXPECTED_FAILURES_QUERY):
            if row.testCaseRun_fk is not None:
                by_run[row.testCaseRun_fk].append(
                    ExpectedFailure(reason=row.failureReason or "", issue_id=row.issue_fk)
                )
        return by_run

    def test_issues(self) -> list[TestIssue]:
        return [
            TestIssue(
                id=row.id,
                run_id=row.testCaseRun_fk,
                description=(
                    row.detailedDescription
                    or row.sanitizedDescription
                    or row.compactDescription
                    or ""
                ),
                context_id=row.sourceCodeContext_fk,
                file_path=row.filePath,
                line_number=row.lineNumber,
            )
            for row in self.conn.execute(TEST_ISSUES_QUERY)
        ]

    def source_frames(self) -> dict[int, list[SourceFrame]]:
        by_context: dict[int, list[SourceFrame]] = defaultdict(list)
        for row in self.conn.execute(SOURCE_FRAMES_QUERY):
            if row.context_fk is not None:
                by_context[row.context_fk].append(
                    SourceFrame(row.symbolName, row.filePath, row.lineNumber)
                )
        return by_context

    def attachments(self) -> dict[int, list[tuple[str, str]]]:
        """``(filename, payload ref id)`` pairs per test case run."""
        by_run: dict[int, list[tuple[str, str]]] = defaultdict(list)
        for row in self.conn.execute(ATTACHMENTS_QUERY):
            if row.testCaseRun_fk is None or not row.filenameOverride:
                continue
            if not row.xcResultKitPayloadRefId:
                continue
            if row.filenameOverride.startswith(IGNORED_ATTACHMENT_PREFIX):
                continue
            by_run[row.testCaseRun_fk].append(
                (row.filenameOverride, row.xcResultKitPayloadRefId)
            )
        return by_run


def format_issue(issue: TestIssue, frames: dict[int, list[SourceFrame]], indent: str = "") -> str:
    """Render an issue with its location and symbolicated stack frames."""
    if not issue.description:
        return ""

    message = f"{indent}<strong>{escape(issue.description)}</strong>"
    location = _location(issue.file_path, issue.line_number)
    if location:
        message += f"{location}<br>"

    for frame in frames.get(issue.context_id, []) if issue.context_id is not None else []:
        message += f"{indent}{INDENT}<strong>{escape(frame.symbol or '??')}</strong>"
        message += _location(frame.file_path, frame.line_number)
        message += "<br>"
    return message


def build_message(
    run_id: int,
    status: ResultStatus,
    skip_notice: str | None,
    expected_failures: list[ExpectedFailure],
    issues: list[TestIssue],
    frames: dict[int, list[SourceFrame]],
) -> str:
    message = ""

    if status is ResultStatus.SKIPPED and skip_notice:
        message += f"<p><strong>Skipped Reason:</strong> {escape(skip_notice)}</p>"

    if status is ResultStatus.BLOCKED:
        issues_by_id = {issue.id: issue for issue in issues}
        for i, failure in enumerate(expected_failures):
            if i > 0:
                message += "<br><br>"
            message += f"<p><strong>Expected Failure:</strong> {escape(failure.reason)}</p>"
            issue = issues_by_id.get(failure.issue_id) if failure.issue_id is not None else None
            if issue:
                message += format_issue(issue, frames, INDENT)

    if status is ResultStatus.FAILED:
        rendered = [format_issue(issue, frames) for issue in issues if issue.run_id == run_id]
        message += "<br><br>".join(f"<p>{m}</p>" for m in rendered if m)

    return message


def decompress_blob(data: bytes) -> bytes:
    """Decompress a payload if it starts with the Zstandard magic number."""
    if data[:4] != ZSTD_MAGIC:
        return data
    # Xcode writes frames without the content size, which rules out
    # ZstdDecompressor.decompress(). Payloads may span several frames.
    reader = zstandard.ZstdDecompressor().stream_reader(data, read_across_frames=True)
    with reader:
        return reader.read()


def read_blob(bundle: Path, filename: str, ref_id: str) -> Attachment:
    path = bundle / DATA_DIR / f"{DATA_FILE_PREFIX}{ref_id}"
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return Attachment(filename=filename, error=f'Attachment not found: "{path}"')
    except OSError as e:
        return Attachment(filename=filename, error=f'Failed to read attachment "{path}": {e}')

    try:
        return Attachment(filename=filename, content=decompress_blob(raw))
    except zstandard.ZstdError as e:
        return Attachment(filename=filename, error=f'Failed to decompress attachment "{path}": {e}')


def export_database(bundle: Path) -> None:
    """Let ``xcresulttool`` generate the bundle's SQLite database."""
    cmd = ["xcrun", "xcresulttool", "get", "test-results", "summary", "--path", str(bundle)]
    logger.info("Generating XCResult database", bundle=str(bundle))
    try:
        subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=EXPORT_TIMEOUT,
        )
    except FileNotFoundError as e:
        raise InputError(
            f"Failed to get test-results summary for {bundle}: xcrun is not available"
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise InputError(
            f"Failed to get test-results summary for {bundle}: {stderr or e}"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise InputError(f"Failed to get test-results summary for {bundle}: {e}") from e


def _create_engine(db_path: Path):
    return create_engine(
        "sqlite://",
        creator=lambda: sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True),
        poolclass=NullPool,
    )


def read_results(bundle: Path) -> list[TestCaseResult]:
    """Build results from the bundle database (blocking)."""
    db_path = bundle / DATABASE_FILE
    engine = _create_engine(db_path)
    try:
        with engine.connect() as conn:
            db = XCResultDatabase(conn)
            suites = db.suite_paths()
            test_cases = db.test_cases()
            skip_notices = db.skip_notices()
            expected_failures = db.expected_failures()
            issues = db.test_issues()
            frames = db.source_frames()
            attachments = db.attachments()
            runs = db.test_case_runs()
    except SQLAlchemyError as e:
        raise ReportParseError(str(bundle), f"cannot read {DATABASE_FILE}: {e}") from e
    finally:
        engine.dispose()

    results = []
    for run in runs:
        test_case = test_cases.get(run.testCase_fk) if run.testCase_fk is not None else None
        if test_case is None:
            continue
        name, suite_id = test_case

        status = map_status(run.result)
        skip_notice = skip_notices.get(run.skipNotice_fk) if run.skipNotice_fk else None
        results.append(
            TestCaseResult(
                # Names carry the Swift "()" suffix
                name=(name or "Unknown Test").split("(")[0],
                folder=suites.path(suite_id) or "Unknown Suite",
                status=status,
                message=build_message(
                    run.id,
                    status,
                    skip_notice,
                    expected_failures.get(run.id, []),
                    issues,
                    frames,
                ),
                attachments=[
                    read_blob(bundle, filename, ref_id)
                    for filename, ref_id in attachments.get(run.id, [])
                ],
            )
        )
    return results


async def parse_xcresult(
    bundle_path: str | Path,
    attachment_base_dir: str | Path | None,
    options: ParserOptions,
) -> list[TestCaseResult]:
    """Convert an ``.xcresult`` bundle to canonical results.

    Captured output is not part of the database, so ``options`` has no
    effect on the messages. Attachments are always read from the bundle
    itself, ``attachment_base_dir`` is accepted for interface parity.

    Raises:
        InputError: If the bundle is missing or its database cannot be
            generated.
        ReportParseError: If the database does not have the expected schema.
    """
    bundle = Path(bundle_path)
    if not bundle.is_dir():
        raise InputError(f'XCResult bundle not found: "{bundle}"')

    if not (bundle / DATABASE_FILE).exists():
        await asyncio.to_thread(export_database, bundle)

    return await asyncio.to_thread(read_results, bundle)
