"""Test case markers embedded in test names.

A marker ties a test result to a QA Sphere test case: ``PRJ-002`` refers to
test case 2 of project ``PRJ``. Markers are usually hyphenated, but test
frameworks that derive names from function identifiers cannot use hyphens,
so a few hyphen-less conventions are recognised for those report formats:

- ``test_prj002_cart`` (separator bounded, pytest style)
- ``TestPrj002Cart`` (camelCase after the ``Test`` prefix, Go/Java style)
- ``TestCartPrj002`` (camelCase at the end)
- ``test_PRJ_002_cart`` (underscore form, XCTest style)

Every lookup tries a pattern anchored at the start of the name, then at the
end, then anywhere, and the first match wins. Names often contain several
numbers, so this order must stay the same across all operations.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from qas_cli.core.models import ReportType

MARKER_SEP = "_"
LOOKS_LIKE_TEST_FN = re.compile(r"^test", re.IGNORECASE)

HYPHENATED_PATTERN = r"([A-Za-z0-9]{1,5})-(\d{3,})"
# XCTest method names start with "test_", which must not read as a code
UNDERSCORED_PATTERN = r"(?![Tt][Ee][Ss][Tt]_)([A-Z][A-Za-z0-9]{0,4})_(\d{3,})"

# Hyphen-less codes are letters only: in "BD026123" there is no way to tell
# where an alphanumeric code ends and the sequence starts.
SEPARATED_PATTERN = rf"(?:^|{MARKER_SEP})([A-Za-z]{{1,5}})(\d{{3,}})(?:$|{MARKER_SEP})"
CAMEL_START_PATTERN = re.compile(r"^[tT][eE][sS][tT]([A-Za-z]{1,5})(\d{3,})(?=[A-Z]|$)")
CAMEL_END_PATTERN = re.compile(r"(?<=[a-z])([A-Z][A-Za-z]{0,4})(\d{3,})$")

TCASE_URL_PATTERN = re.compile(
    r"^(?:(https?)://)?([^/\s]+)/project/([A-Za-z0-9]+)/tcase/(\d+)(?:[/?#]\S*)?$"
)
RUN_URL_PATTERN = re.compile(
    r"^(?:(https?)://)?([^/\s]+)/project/([A-Za-z0-9]+)/run/(\d+)(?:[/?#]\S*)?$"
)


def format_marker(project_code: str, seq: int) -> str:
    """Canonical marker, e.g. ``format_marker("PRJ", 7) == "PRJ-007"``."""
    return f"{project_code}-{seq:03d}"


def to_case_insensitive(text: str) -> str:
    """Turn ``"BD026"`` into the pattern fragment ``"[bB][dD]026"``."""
    return "".join(
        f"[{ch.lower()}{ch.upper()}]" if ch.isascii() and ch.isalpha() else re.escape(ch)
        for ch in text
    )


def search_with_priority(pattern: str, text: str, flags: int = 0) -> re.Match[str] | None:
    """Match ``pattern`` at the start, then at the end, then anywhere."""
    return (
        re.search(rf"^(?:{pattern})", text, flags)
        or re.search(rf"(?:{pattern})\Z", text, flags)
        or re.search(pattern, text, flags)
    )


@dataclass(frozen=True)
class TCaseUrl:
    """Parsed QA Sphere test case URL."""

    url: str
    project: str
    seq: int


@dataclass(frozen=True)
class RunUrl:
    """Parsed QA Sphere test run URL."""

    url: str
    project: str
    run: int


def _base_url(scheme: str | None, host: str) -> str:
    return f"{scheme or 'https'}://{host}"


def parse_tcase_url(url: str) -> TCaseUrl | None:
    """Parse ``https://host/project/PRJ/tcase/12`` into its parts."""
    match = TCASE_URL_PATTERN.match(url.strip())
    if not match:
        return None
    scheme, host, project, seq = match.groups()
    return TCaseUrl(url=_base_url(scheme, host), project=project, seq=int(seq))


def parse_run_url(url: str) -> RunUrl | None:
    """Parse ``[https://]host/project/PRJ/run/23[/...]`` into its parts."""
    match = RUN_URL_PATTERN.match(url.strip())
    if not match:
        return None
    scheme, host, project, run = match.groups()
    return RunUrl(url=_base_url(scheme, host), project=project, run=int(run))


class MarkerParser:
    """Detects and matches markers according to the report format.

    Hyphen-less conventions are only tried for formats whose test names are
    function identifiers, and only when the name starts with ``test``.
    """

    def __init__(self, report_type: ReportType):
        self.report_type = report_type

    @property
    def allows_hyphenless(self) -> bool:
        return self.report_type is ReportType.JUNIT

    @property
    def allows_underscored(self) -> bool:
        return self.report_type is ReportType.XCRESULT

    def _hyphenless_applies(self, name: str) -> bool:
        return self.allows_hyphenless and bool(LOOKS_LIKE_TEST_FN.match(name))

    def format_marker(self, project_code: str, seq: int) -> str:
        return format_marker(project_code, seq)

    def detect_project_code(self, name: str) -> str | None:
        """Detect the project code of the first marker in ``name``.

        Hyphenated (and underscored) codes are returned with their original
        casing, hyphen-less ones uppercased.
        """
        match = search_with_priority(HYPHENATED_PATTERN, name)
        if match:
            return match.group(1)

        if self.allows_underscored:
            match = search_with_priority(UNDERSCORED_PATTERN, name)
            if match:
                return match.group(1)

        if not self._hyphenless_applies(name):
            return None

        match = search_with_priority(SEPARATED_PATTERN, name, re.IGNORECASE)
        if match:
            return match.group(1).upper()

        match = CAMEL_START_PATTERN.search(name)
        if match:
            return match.group(1).upper()

        match = CAMEL_END_PATTERN.search(name)
        if match:
            return match.group(1).upper()

        return None

    def extract_seq(self, name: str, project_code: str) -> int | None:
        """Extract the sequence number of the marker for ``project_code``."""
        code = re.escape(project_code)
        match = search_with_priority(rf"{code}-(\d{{3,}})", name)
        if match:
            return int(match.group(1))

        if self.allows_underscored:
            match = search_with_priority(rf"{code}_(\d{{3,}})", name)
            if match:
                return int(match.group(1))

        if not self._hyphenless_applies(name):
            return None

        ci_code = to_case_insensitive(project_code)

        match = search_with_priority(
            rf"(?:^|{MARKER_SEP}){ci_code}(\d{{3,}})(?:$|{MARKER_SEP})", name, re.IGNORECASE
        )
        if match:
            return int(match.group(1))

        match = re.search(rf"^[tT][eE][sS][tT]{ci_code}(\d{{3,}})(?=[A-Z]|$)", name)
        if match:
            return int(match.group(1))

        match = re.search(rf"(?<=[a-z]){ci_code}(\d{{3,}})$", name)
        if match:
            return int(match.group(1))

        return None

    def name_matches_tcase(self, name: str, project_code: str, seq: int) -> bool:
        """Check whether ``name`` carries the marker of test case ``seq``."""
        marker = format_marker(project_code, seq).lower()
        lowered = name.lower()
        if marker in lowered:
            return True

        if self.allows_underscored and marker.replace("-", MARKER_SEP) in lowered:
            return True

        if not self._hyphenless_applies(name):
            return False

        ci_code = to_case_insensitive(project_code)
        seq_str = f"{seq:03d}"

        if re.search(
            rf"(?:^|{MARKER_SEP}){ci_code}{seq_str}(?:$|{MARKER_SEP})", name, re.IGNORECASE
        ):
            return True

        if re.search(rf"^[tT][eE][sS][tT]{ci_code}{seq_str}(?=[A-Z]|$)", name):
            return True

        return bool(re.search(rf"(?<=[a-z]){ci_code}{seq_str}$", name))
