"""Placeholder expansion for run titles and generated file names."""

from __future__ import annotations

import os
import re
from datetime import datetime

MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

PLACEHOLDER_PATTERN = re.compile(r"\{(env:[A-Za-z_][A-Za-z0-9_]*|[A-Za-z]+)\}")


def _date_values(now: datetime) -> dict[str, str]:
    hour12 = now.hour % 12 or 12
    return {
        "YYYY": f"{now.year:04d}",
        "YY": f"{now.year % 100:02d}",
        "MMM": MONTH_NAMES[now.month - 1],
        "MM": f"{now.month:02d}",
        "DD": f"{now.day:02d}",
        "HH": f"{now.hour:02d}",
        "hh": f"{hour12:02d}",
        "mm": f"{now.minute:02d}",
        "ss": f"{now.second:02d}",
        "AMPM": "AM" if now.hour < 12 else "PM",
    }


def process_template(template: str, now: datetime | None = None) -> str:
    """Expand ``{env:VAR}`` and date/time placeholders in ``template``.

    Supported date placeholders: ``{YYYY}``, ``{YY}``, ``{MMM}``, ``{MM}``,
    ``{DD}``, ``{HH}``, ``{hh}``, ``{mm}``, ``{ss}``, ``{AMPM}``.
    Unknown placeholders and unset environment variables are left as-is.

    Args:
        template: Template string.
        now: Timestamp to use (defaults to the current local time).

    Returns:
        The expanded string.
    """
    values = _date_values(now or datetime.now())

    def replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key.startswith("env:"):
            value = os.environ.get(key[4:])
            return value if value is not None else match.group(0)
        return values.get(key, match.group(0))

    return PLACEHOLDER_PATTERN.sub(replace, template)
