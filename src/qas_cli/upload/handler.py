"""Reconciling parsed test results with QA Sphere and uploading them.

One ``ResultUploadCommandHandler.handle()`` call is one upload:

1. parse every input file, in the order given
2. use the run from ``--run-url``, or create a run (reusing one with the
   same title) containing the test cases referenced by the results,
   optionally creating test cases for results without a marker
3. match results to the run's test cases by marker
4. upload the matched results one by one
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from qas_cli.api import QasApiClient, RemoteTestCase
from qas_cli.core.exceptions import AttachmentError, InputError, MatchError, QasApiError
from qas_cli.core.models import ParserOptions, ReportType, TestCaseResult
from qas_cli.logging import get_logger
from qas_cli.markers import MarkerParser, format_marker, parse_run_url
from qas_cli.parsers import get_parser, reads_directory
from qas_cli.upload.guidance import print_missing_marker_guidance
from qas_cli.upload.uploader import MatchedResult, ResultUploader
from qas_cli.utils.template import process_template

logger = get_logger(__name__)

CONFLICTING_RUN_PATTERN = re.compile(r"conflicting run id: (\d+)$")


@dataclass(frozen=True)
class UploadDefaults:
    """Fixed names and templates used when creating runs and test cases."""

    folder_title: str = "cli-import"
    tag: str = "cli-import"
    run_title_template: str = "Automated test run - {MMM} {DD}, {YYYY}, {hh}:{mm}:{ss} {AMPM}"
    run_description: str = "Test run created through automation pipeline"
    run_type: str = "static_struct"
    mapping_file_template: str = "qasphere-automapping-{YYYY}{MM}{DD}-{HH}{mm}{ss}.txt"
    page_size: int = 50


@dataclass
class UploadOptions:
    """Options of one upload command."""

    files: list[Path]
    run_url: str | None = None
    run_name: str | None = None
    project_code: str | None = None
    attachments: bool = False
    force: bool = False
    ignore_unmatched: bool = False
    create_tcases: bool = False
    parser_options: ParserOptions = field(default_factory=ParserOptions)


@dataclass
class FileResults:
    file: Path
    results: list[TestCaseResult]


@dataclass
class UploadSummary:
    project: str
    run: int
    run_url: str
    uploaded: int
    unmatched: int
    created_tcases: int = 0
    mapping_file: Path | None = None


class ResultUploadCommandHandler:
    """Drives one upload from report files to a QA Sphere run."""

    def __init__(
        self,
        report_type: ReportType,
        options: UploadOptions,
        api: QasApiClient,
        base_url: str,
        console: Console,
        defaults: UploadDefaults | None = None,
        output_dir: Path | None = None,
    ):
        """Initialize the handler.

        Args:
            report_type: Format of the input files.
            options: Command options.
            api: QA Sphere API client.
            base_url: Configured instance URL (``QAS_URL``).
            console: Console for user-facing output.
            defaults: Names and templates for created runs and test cases.
            output_dir: Directory for the marker mapping file (defaults to
                the working directory).
        """
        self.report_type = report_type
        self.options = options
        self.api = api
        self.base_url = base_url.rstrip("/")
        self.console = console
        self.defaults = defaults or UploadDefaults()
        self.output_dir = output_dir or Path.cwd()
        self.markers = MarkerParser(report_type)
        self._created_tcases = 0
        self._mapping_file: Path | None = None
        self._unmatched_reported = False

    async def handle(self) -> UploadSummary:
        """Run the upload.

        Raises:
            InputError: Unreadable input, invalid run URL, unknown project or
                no test cases to create a run for.
            MatchError: Results without a test case, unless ``force`` or
                ``ignore_unmatched`` is set.
            AttachmentError: Unreadable attachments while uploading them,
                unless ``force`` is set.
            QasApiError: Any failed API request.
        """
        if not self.options.files:
            raise InputError("No files specified")

        file_results = await self.parse_files()
        results = [r for fr in file_results for r in fr.results]

        if self.options.run_url:
            project, run = self.resolve_run_url(self.options.run_url)
            self.console.print(f"[blue]Using existing test run: {escape(self.options.run_url)}[/blue]")
        else:
            project = self.options.project_code or self.detect_project_code(file_results)
            self.console.print(f"[blue]Detected project code: {escape(project)}[/blue]")
            run = await self.create_run_for_results(project, results)

        run_url = f"{self.base_url}/project/{project}/run/{run}"
        run_tcases = await self.api.get_run_test_cases(project, run)
        matched, missing = self.match_results(project, results, run_tcases)
        self.check_unmatched(project, missing)
        self.check_attachments(matched)

        files = ", ".join(f"[green]{escape(str(f))}[/green]" for f in self.options.files)
        self.console.print(
            f"Uploading files [{files}] to run [[green]{run}[/green]] "
            f"of project [[green]{escape(project)}[/green]]"
        )
        uploader = ResultUploader(
            self.api, project, run, self.console, upload_attachments=self.options.attachments
        )
        await uploader.upload(matched)
        self.console.print(f"Uploaded {len(matched)} test cases")

        return UploadSummary(
            project=project,
            run=run,
            run_url=run_url,
            uploaded=len(matched),
            unmatched=len(missing),
            created_tcases=self._created_tcases,
            mapping_file=self._mapping_file,
        )

    async def parse_files(self) -> list[FileResults]:
        """Parse the input files one after another."""
        parser = get_parser(self.report_type)
        parsed = []
        for file in self.options.files:
            if reads_directory(self.report_type):
                results = await parser(str(file), file, self.options.parser_options)
            else:
                try:
                    content = await asyncio.to_thread(file.read_text, encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    raise InputError(f'Failed to read "{file}": {e}') from e
                results = await parser(content, file.parent, self.options.parser_options)
            logger.info("Parsed report", file=str(file), results=len(results))
            parsed.append(FileResults(file=file, results=results))
        return parsed

    def resolve_run_url(self, run_url: str) -> tuple[str, int]:
        parsed = parse_run_url(run_url)
        if parsed is None or parsed.url != self.base_url:
            raise InputError(
                "Invalid --run-url specified. Must be in the format: "
                f"{self.base_url}/project/PROJECT/run/RUN"
            )
        return parsed.project, parsed.run

    def detect_project_code(self, file_results: list[FileResults]) -> str:
        """Project code of the first marker, in file order then result order."""
        for file_result in file_results:
            for result in file_result.results:
                if not result.name:
                    continue
                code = self.markers.detect_project_code(result.name)
                if code:
                    return code
        raise InputError(
            "Could not detect project code from test case names. "
            "Please make sure they contain a valid project code (e.g., PRJ-123)"
        )

    async def create_run_for_results(self, project: str, results: list[TestCaseResult]) -> int:
        if not await self.api.project_exists(project):
            raise InputError(f"Project {project} does not exist")

        self.console.print(f"[blue]Creating a new test run for project: {escape(project)}[/blue]")
        tcases = await self.find_test_cases(project, results)

        if self.options.create_tcases:
            tcases = await self.create_missing_test_cases(project, results, tcases)
        else:
            # Fail before a run is created for a batch that cannot be uploaded
            _, missing = self.match_results(project, results, tcases)
            self.check_unmatched(project, missing)

        if not tcases:
            raise InputError("No valid test cases found in any of the files")

        run = await self.create_run(project, tcases)
        self.console.print(f"[blue]Test run URL: {self.base_url}/project/{project}/run/{run}[/blue]")
        return run

    async def find_test_cases(
        self, project: str, results: list[TestCaseResult]
    ) -> list[RemoteTestCase]:
        """Fetch the project's test cases referenced by result markers."""
        seq_ids: list[str] = []
        for result in results:
            if not result.name:
                continue
            seq = self.markers.extract_seq(result.name, project)
            if seq is not None:
                marker = format_marker(project, seq)
                if marker not in seq_ids:
                    seq_ids.append(marker)

        if not seq_ids:
            return []

        tcases: list[RemoteTestCase] = []
        page = 1
        while True:
            response = await self.api.get_test_cases_by_sequence(
                project, seq_ids, page=page, limit=self.defaults.page_size
            )
            tcases.extend(response.data)
            if not response.data or len(tcases) >= response.total:
                break
            page += 1
        return tcases

    def match_results(
        self, project: str, results: list[TestCaseResult], tcases: list[RemoteTestCase]
    ) -> tuple[list[MatchedResult], list[TestCaseResult]]:
        """Pair results with test cases by marker; return (matched, unmatched)."""
        matched: list[MatchedResult] = []
        missing: list[TestCaseResult] = []
        for result in results:
            tcase = None
            if result.name:
                tcase = next(
                    (
                        t
                        for t in tcases
                        if self.markers.name_matches_tcase(result.name, project, t.seq)
                    ),
                    None,
                )
            if tcase is None:
                missing.append(result)
            else:
                matched.append(MatchedResult(tcase=tcase, result=result))
        return matched, missing

    def check_unmatched(self, project: str, missing: list[TestCaseResult]) -> None:
        """Report unmatched results and fail unless tolerated.

        Raises:
            MatchError: If neither ``force`` nor ``ignore_unmatched`` is set.
        """
        if not missing or self._unmatched_reported:
            return
        self._unmatched_reported = True

        if self.options.ignore_unmatched:
            count = len(missing)
            self.console.print(f"[dim]\nSkipped {count} unmatched test{'' if count == 1 else 's'}[/dim]")
            return

        header = "[yellow]Warning:[/yellow]" if self.options.force else "[red]Error:[/red]"
        for result in missing:
            folder = f' "{escape(result.folder)}" ->' if result.folder else ""
            self.console.print(
                f'{header}[blue]{folder} "{escape(result.name)}"[/blue] does not match any test cases'
            )

        print_missing_marker_guidance(
            self.console, self.report_type, project, missing[0].name or None
        )
        if not self.options.create_tcases:
            where = " and the provided test run" if self.options.run_url else ""
            self.console.print(
                f"[yellow]Also ensure that the test cases exist in the QA Sphere project{where}.[/yellow]"
            )

        if not self.options.force:
            raise MatchError(missing)

    def check_attachments(self, matched: list[MatchedResult]) -> None:
        """Report unreadable attachments when attachments are uploaded.

        Raises:
            AttachmentError: If any attachment failed and ``force`` is not set.
        """
        if not self.options.attachments:
            return

        errors = [error for item in matched for error in item.result.attachment_errors]
        header = "[yellow]Warning:[/yellow]" if self.options.force else "[red]Error:[/red]"
        for error in errors:
            self.console.print(f"{header} {escape(error)}")

        if errors and not self.options.force:
            raise AttachmentError(errors)

    async def create_run(self, project: str, tcases: list[RemoteTestCase]) -> int:
        """Create a run, or reuse the run that already has the same title."""
        title = process_template(self.options.run_name or self.defaults.run_title_template)
        try:
            run = await self.api.create_run(
                project,
                title=title,
                description=self.defaults.run_description,
                tcase_ids=[t.id for t in tcases],
                run_type=self.defaults.run_type,
            )
        except QasApiError as e:
            match = CONFLICTING_RUN_PATTERN.search(e.message)
            if not match:
                raise
            run = int(match.group(1))
            logger.info("Reusing test run", project=project, run=run, title=title)
            self.console.print(
                f'[yellow]Reusing existing test run "{escape(title)}" with ID: {run}[/yellow]'
            )
            return run

        self.console.print(f'[green]Created new test run "{escape(title)}" with ID: {run}[/green]')
        return run

    async def create_missing_test_cases(
        self, project: str, results: list[TestCaseResult], tcases: list[RemoteTestCase]
    ) -> list[RemoteTestCase]:
        """Create test cases for results without one and mark the results.

        Results are grouped by name. A test case with the same title in the
        default folder is reused, the others are created there. The new
        markers are prepended to the result names so that matching against
        the run succeeds, and written to a mapping file.
        """
        _, missing = self.match_results(project, results, tcases)
        names: list[str] = []
        for result in missing:
            if result.name and result.name not in names:
                names.append(result.name)
        if not names:
            return tcases

        by_title = await self._default_folder_test_cases(project)
        to_create = [name for name in names if name not in by_title]
        if to_create:
            created = await self.api.create_test_cases(
                project,
                [self.defaults.folder_title],
                [{"title": name, "tags": [self.defaults.tag]} for name in to_create],
            )
            if len(created) != len(to_create):
                raise QasApiError(
                    f"Expected {len(to_create)} created test cases, got {len(created)}"
                )
            for name, tcase in zip(to_create, created):
                by_title[name] = RemoteTestCase(id=tcase.id, seq=tcase.seq, title=name)
            self._created_tcases = len(created)
            self.console.print(
                f"[green]Created {len(created)} new test case(s) in folder "
                f'"{escape(self.defaults.folder_title)}"[/green]'
            )

        mapping = {name: by_title[name] for name in names}
        for result in missing:
            tcase = mapping.get(result.name)
            if tcase is not None:
                result.name = f"{format_marker(project, tcase.seq)}: {result.name}"

        self._write_mapping_file(project, mapping)

        known = {t.id for t in tcases}
        return tcases + [t for t in mapping.values() if t.id not in known]

    async def _default_folder_test_cases(self, project: str) -> dict[str, RemoteTestCase]:
        """Test cases in the default folder, by title (empty if no folder)."""
        folder_id = None
        page = 1
        while folder_id is None:
            folders = await self.api.get_folders(
                project, search=self.defaults.folder_title, page=page, limit=self.defaults.page_size
            )
            folder_id = next(
                (f.id for f in folders.data if f.title == self.defaults.folder_title), None
            )
            if not folders.data or page * self.defaults.page_size >= folders.total:
                break
            page += 1

        if folder_id is None:
            return {}

        by_title: dict[str, RemoteTestCase] = {}
        page = 1
        while True:
            response = await self.api.get_test_cases(
                project, folders=[folder_id], page=page, limit=self.defaults.page_size
            )
            for tcase in response.data:
                by_title.setdefault(tcase.title, tcase)
            if not response.data or page * self.defaults.page_size >= response.total:
                break
            page += 1
        return by_title

    def _write_mapping_file(self, project: str, mapping: dict[str, RemoteTestCase]) -> None:
        path = self.output_dir / process_template(self.defaults.mapping_file_template)
        lines = [f"{format_marker(project, t.seq)}: {title}" for title, t in mapping.items()]
        try:
            path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot write marker mapping file", path=str(path), error=str(e))
            self.console.print(
                f"[yellow]Warning: could not write marker mapping file {escape(str(path))}: "
                f"{escape(str(e))}[/yellow]"
            )
            return

        self._mapping_file = path
        self.console.print(
            f"Test case markers written to [green]{escape(str(path))}[/green]. "
            "Add them to your test names to match future uploads."
        )
