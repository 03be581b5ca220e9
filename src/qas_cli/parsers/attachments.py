"""Reading attachment files referenced from test reports."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from qas_cli.core.models import Attachment


def _read_file(path: Path) -> bytes:
    return path.read_bytes()


async def _read_attachment(raw_path: str, base_dir: Path | None) -> Attachment:
    path = Path(raw_path)
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path

    try:
        content = await asyncio.to_thread(_read_file, path)
    except FileNotFoundError:
        return Attachment(filename=path.name, error=f'Attachment not found: "{raw_path}"')
    except OSError as e:
        return Attachment(filename=path.name, error=f'Failed to read attachment "{raw_path}": {e}')
    return Attachment(filename=path.name, content=content)


async def resolve_attachments(
    paths: Sequence[str], base_dir: str | Path | None = None
) -> list[Attachment]:
    """Read attachment files concurrently.

    Read failures never raise: each failure is recorded on its
    ``Attachment`` so a single missing file does not abort the report.

    Args:
        paths: Attachment paths, absolute or relative to ``base_dir``.
        base_dir: Directory that relative paths are resolved against.

    Returns:
        One ``Attachment`` per input path, in input order.
    """
    base = Path(base_dir) if base_dir else None
    return list(await asyncio.gather(*(_read_attachment(p, base) for p in paths)))
