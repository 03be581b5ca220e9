"""Typer application for the ``qasphere`` command."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from qas_cli import __version__
from qas_cli.api import QasApiClient
from qas_cli.config import get_settings
from qas_cli.core.exceptions import QasCliError
from qas_cli.core.models import ParserOptions, ReportType, SkipPolicy
from qas_cli.logging import configure_logging
from qas_cli.upload import ResultUploadCommandHandler, UploadOptions

app = typer.Typer(
    name="qasphere",
    help="Upload automated test results to QA Sphere",
    no_args_is_help=True,
)

RunUrlOption = Annotated[
    str | None,
    typer.Option(
        "-r",
        "--run-url",
        help="URL of an existing run, e.g. https://acme.eu1.qasphere.com/project/PRJ/run/23",
    ),
]
RunNameOption = Annotated[
    str | None,
    typer.Option(
        "--run-name",
        help=(
            "Title of the new run. Supports {env:VAR}, {YYYY}, {YY}, {MMM}, {MM}, {DD}, "
            "{HH}, {hh}, {mm}, {ss} and {AMPM} placeholders"
        ),
    ),
]
ProjectCodeOption = Annotated[
    str | None,
    typer.Option("--project-code", help="Project code, detected from markers when omitted"),
]
AttachmentsOption = Annotated[
    bool, typer.Option("--attachments", help="Upload attachments referenced by the results")
]
ForceOption = Annotated[
    bool,
    typer.Option("--force", help="Upload despite unmatched results or missing attachments"),
]
IgnoreUnmatchedOption = Annotated[
    bool,
    typer.Option("--ignore-unmatched", help="Silently skip results without a test case"),
]
CreateTcasesOption = Annotated[
    bool,
    typer.Option(
        "--create-tcases",
        help="Create test cases for results without a marker (new runs only)",
    ),
]
SkipStdoutOption = Annotated[
    SkipPolicy,
    typer.Option("--skip-report-stdout", help="When to leave stdout out of result comments"),
]
SkipStderrOption = Annotated[
    SkipPolicy,
    typer.Option("--skip-report-stderr", help="When to leave stderr out of result comments"),
]
VerboseOption = Annotated[bool, typer.Option("-v", "--verbose", help="Enable debug logging")]


def create_client(url: str, token: str) -> QasApiClient:
    return QasApiClient(url, token)


async def _upload(
    report_type: ReportType, options: UploadOptions, url: str, token: str, console: Console
) -> None:
    async with create_client(url, token) as api:
        handler = ResultUploadCommandHandler(report_type, options, api, url, console)
        await handler.handle()


def run_upload(report_type: ReportType, options: UploadOptions, verbose: bool) -> int:
    """Run an upload command and return the process exit code."""
    settings = get_settings()
    configure_logging(
        log_level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_json,
    )
    console = Console(stderr=True, highlight=False)

    try:
        url, token = settings.require_credentials()
        asyncio.run(_upload(report_type, options, url, token, console))
    except QasCliError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1
    return 0


def _upload_command(
    report_type: ReportType,
    files: list[Path],
    run_url: str | None,
    run_name: str | None,
    project_code: str | None,
    attachments: bool,
    force: bool,
    ignore_unmatched: bool,
    create_tcases: bool,
    skip_report_stdout: SkipPolicy,
    skip_report_stderr: SkipPolicy,
    verbose: bool,
) -> None:
    options = UploadOptions(
        files=files,
        run_url=run_url,
        run_name=run_name,
        project_code=project_code,
        attachments=attachments,
        force=force,
        ignore_unmatched=ignore_unmatched,
        create_tcases=create_tcases,
        parser_options=ParserOptions(
            skip_stdout=skip_report_stdout, skip_stderr=skip_report_stderr
        ),
    )
    raise typer.Exit(code=run_upload(report_type, options, verbose))


@app.command("junit-upload")
def junit_upload(
    files: Annotated[list[Path], typer.Argument(help="JUnit XML files")],
    run_url: RunUrlOption = None,
    run_name: RunNameOption = None,
    project_code: ProjectCodeOption = None,
    attachments: AttachmentsOption = False,
    force: ForceOption = False,
    ignore_unmatched: IgnoreUnmatchedOption = False,
    create_tcases: CreateTcasesOption = False,
    skip_report_stdout: SkipStdoutOption = SkipPolicy.NEVER,
    skip_report_stderr: SkipStderrOption = SkipPolicy.NEVER,
    verbose: VerboseOption = False,
) -> None:
    """Upload JUnit XML results to a QA Sphere run.

    Test names must contain a test case marker such as PRJ-123.
    """
    _upload_command(
        ReportType.JUNIT, files, run_url, run_name, project_code, attachments, force,
        ignore_unmatched, create_tcases, skip_report_stdout, skip_report_stderr, verbose,
    )  # fmt: skip


@app.command("playwright-json-upload")
def playwright_json_upload(
    files: Annotated[list[Path], typer.Argument(help="Playwright JSON report files")],
    run_url: RunUrlOption = None,
    run_name: RunNameOption = None,
    project_code: ProjectCodeOption = None,
    attachments: AttachmentsOption = False,
    force: ForceOption = False,
    ignore_unmatched: IgnoreUnmatchedOption = False,
    create_tcases: CreateTcasesOption = False,
    skip_report_stdout: SkipStdoutOption = SkipPolicy.NEVER,
    skip_report_stderr: SkipStderrOption = SkipPolicy.NEVER,
    verbose: VerboseOption = False,
) -> None:
    """Upload Playwright JSON results to a QA Sphere run.

    Markers come from a "test case" annotation or from the test name.
    """
    _upload_command(
        ReportType.PLAYWRIGHT, files, run_url, run_name, project_code, attachments, force,
        ignore_unmatched, create_tcases, skip_report_stdout, skip_report_stderr, verbose,
    )  # fmt: skip


@app.command("allure-upload")
def allure_upload(
    files: Annotated[list[Path], typer.Argument(help="Allure results directories")],
    run_url: RunUrlOption = None,
    run_name: RunNameOption = None,
    project_code: ProjectCodeOption = None,
    attachments: AttachmentsOption = False,
    force: ForceOption = False,
    ignore_unmatched: IgnoreUnmatchedOption = False,
    create_tcases: CreateTcasesOption = False,
    skip_report_stdout: SkipStdoutOption = SkipPolicy.NEVER,
    skip_report_stderr: SkipStderrOption = SkipPolicy.NEVER,
    verbose: VerboseOption = False,
) -> None:
    """Upload Allure results to a QA Sphere run.

    Markers come from a "tms" link or from the test name.
    """
    _upload_command(
        ReportType.ALLURE, files, run_url, run_name, project_code, attachments, force,
        ignore_unmatched, create_tcases, skip_report_stdout, skip_report_stderr, verbose,
    )  # fmt: skip


@app.command("xcresult-upload")
def xcresult_upload(
    files: Annotated[list[Path], typer.Argument(help="Xcode .xcresult bundles")],
    run_url: RunUrlOption = None,
    run_name: RunNameOption = None,
    project_code: ProjectCodeOption = None,
    attachments: AttachmentsOption = False,
    force: ForceOption = False,
    ignore_unmatched: IgnoreUnmatchedOption = False,
    create_tcases: CreateTcasesOption = False,
    skip_report_stdout: SkipStdoutOption = SkipPolicy.NEVER,
    skip_report_stderr: SkipStderrOption = SkipPolicy.NEVER,
    verbose: VerboseOption = False,
) -> None:
    """Upload Xcode result bundles to a QA Sphere run.

    Test names must contain a test case marker such as PRJ_123.
    """
    _upload_command(
        ReportType.XCRESULT, files, run_url, run_name, project_code, attachments, force,
        ignore_unmatched, create_tcases, skip_report_stdout, skip_report_stderr, verbose,
    )  # fmt: skip


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"qasphere {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Upload automated test results to QA Sphere."""
