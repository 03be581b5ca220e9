"""HTML helpers for building result comments.

Result messages are stored as HTML in QA Sphere, so every piece of free
text coming from a report is escaped before it is embedded.
"""

from __future__ import annotations

import html
import re

# CSI sequences (colors, cursor movement) and OSC sequences (hyperlinks, titles)
ANSI_PATTERN = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")


def escape(text: str) -> str:
    """Escape text for safe inclusion in HTML."""
    return html.escape(text, quote=True)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences, e.g. colored assertion diffs."""
    return ANSI_PATTERN.sub("", text)


def code_block(text: str) -> str:
    """Wrap escaped text in ``<pre><code>``; empty for blank text."""
    text = text.strip()
    if not text:
        return ""
    return f"<pre><code>{escape(text)}</code></pre>"


def link_list(items: list[tuple[str, str]]) -> str:
    """Render (name, url) pairs as an HTML list of links."""
    rows = "\n".join(
        f'<li><a href="{escape(url)}">{escape(name)}</a></li>' for name, url in items
    )
    return f"<ul>\n{rows}\n</ul>"
