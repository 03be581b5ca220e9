"""Help text printed when test results carry no test case marker."""

from __future__ import annotations

from types import MappingProxyType

from rich.console import Console
from rich.markup import escape

from qas_cli.core.models import ReportType

SEQUENCE_NOTE = (
    "[dim]where <sequence> is the test case number "
    "(minimum 3 digits, zero-padded if needed)[/dim]"
)


def _junit_guidance(code: str, name: str) -> str:
    return f"""
[yellow]To fix this issue, include the test case marker in your test names:[/yellow]

  Format: [green]{code}-<sequence>: Your test name[/green], {SEQUENCE_NOTE}
  Example: [green]{code}-002: {name}[/green]
           [green]{name} {code}-1312[/green]

  Test function names without hyphens are also recognised:
           [green]test_{code.lower()}002_{name}[/green]
           [green]Test{code.capitalize()}002{name.title().replace(" ", "")}[/green]
"""


def _playwright_guidance(code: str, name: str) -> str:
    return f"""
[yellow]To fix this issue, choose one of the following options:[/yellow]

  [bold]Option 1: Use Test Annotations (Recommended)[/bold]
  Add a "test case" annotation with the QA Sphere test case URL:

  [green]test('{name}', {{
    annotation: {{
      type: 'test case',
      description: 'https://your-qas-instance.com/project/{code}/tcase/123'
    }}
  }}, async ({{ page }}) => {{
    // your test code
  }});[/green]

  [dim]Note: The "type" field is case-insensitive[/dim]

  [bold]Option 2: Include Test Case Marker in Name[/bold]
  Format: [green]{code}-<sequence>: Your test name[/green], {SEQUENCE_NOTE}
  Example: [green]{code}-002: {name}[/green]
"""


def _allure_guidance(code: str, name: str) -> str:
    return f"""
[yellow]To fix this issue, choose one of the following options:[/yellow]

  [bold]Option 1: Add a TMS link (Recommended)[/bold]
  Link the test to its QA Sphere test case with a link of type "tms":
  [green]https://your-qas-instance.com/project/{code}/tcase/123[/green]

  [bold]Option 2: Include Test Case Marker in Name[/bold]
  Format: [green]{code}-<sequence>: Your test name[/green], {SEQUENCE_NOTE}
  Example: [green]{code}-002: {name}[/green]
"""


def _xcresult_guidance(code: str, name: str) -> str:
    return f"""
[yellow]To fix this issue, include the test case marker in your test names:[/yellow]

  Format: [green]{code}_<sequence>[/green], {SEQUENCE_NOTE}
  Example: [green]{code}_002_{name}[/green]
           [green]{name}_{code}_1312[/green]
"""


GUIDANCE = MappingProxyType(
    {
        ReportType.JUNIT: (_junit_guidance, "your test name"),
        ReportType.PLAYWRIGHT: (_playwright_guidance, "your test name"),
        ReportType.ALLURE: (_allure_guidance, "your test name"),
        ReportType.XCRESULT: (_xcresult_guidance, "your_test_name"),
    }
)


def print_missing_marker_guidance(
    console: Console, report_type: ReportType, project_code: str, example_name: str | None = None
) -> None:
    """Explain how to add markers for the given report format."""
    render, default_name = GUIDANCE[report_type]
    console.print(render(escape(project_code), escape(example_name or default_name)))
