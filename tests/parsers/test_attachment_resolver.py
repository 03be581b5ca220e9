"""Tests for reading attachment files."""

from __future__ import annotations

from pathlib import Path

import pytest

from qas_cli.parsers.attachments import resolve_attachments


class TestResolveAttachments:
    """Tests for resolve_attachments."""

    @pytest.mark.asyncio
    async def test_relative_to_base_dir(self, tmp_path: Path) -> None:
        (tmp_path / "shot.png").write_bytes(b"\x89PNG")

        attachments = await resolve_attachments(["shot.png"], tmp_path)

        assert len(attachments) == 1
        assert attachments[0].filename == "shot.png"
        assert attachments[0].content == b"\x89PNG"
        assert attachments[0].error is None
        assert attachments[0].ok

    @pytest.mark.asyncio
    async def test_absolute_path_ignores_base_dir(self, tmp_path: Path) -> None:
        target = tmp_path / "logs" / "run.log"
        target.parent.mkdir()
        target.write_text("log")

        attachments = await resolve_attachments([str(target)], tmp_path / "elsewhere")

        assert attachments[0].content == b"log"

    @pytest.mark.asyncio
    async def test_missing_file_is_reported_not_raised(self, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("a")

        attachments = await resolve_attachments(["missing.png", "a.txt"], tmp_path)

        assert [a.filename for a in attachments] == ["missing.png", "a.txt"]
        assert attachments[0].content is None
        assert attachments[0].error == 'Attachment not found: "missing.png"'
        assert attachments[1].content == b"a"

    @pytest.mark.asyncio
    async def test_directory_is_read_error(self, tmp_path: Path) -> None:
        (tmp_path / "folder").mkdir()

        attachments = await resolve_attachments(["folder"], tmp_path)

        assert attachments[0].content is None
        assert attachments[0].error is not None

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        assert await resolve_attachments([]) == []
