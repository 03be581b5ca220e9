"""Uploading matched results to a QA Sphere run."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from qas_cli.api import QasApiClient, RemoteTestCase
from qas_cli.core.models import TestCaseResult
from qas_cli.logging import get_logger
from qas_cli.utils.html import link_list

logger = get_logger(__name__)


@dataclass
class MatchedResult:
    """A result paired with the run test case it is recorded against."""

    tcase: RemoteTestCase
    result: TestCaseResult


class ResultUploader:
    """Uploads results one by one, in input order.

    The first failing request aborts the remaining uploads; the error
    propagates to the caller.
    """

    def __init__(
        self,
        api: QasApiClient,
        project: str,
        run: int,
        console: Console,
        upload_attachments: bool = False,
    ):
        self.api = api
        self.project = project
        self.run = run
        self.console = console
        self.upload_attachments = upload_attachments

    async def upload(self, matched: list[MatchedResult]) -> None:
        total = len(matched)
        with self.console.status(f"Uploading 0 of {total}") as status:
            for index, item in enumerate(matched, start=1):
                status.update(f"Uploading {index} of {total}")
                await self._upload_one(item)
        logger.info("Results uploaded", project=self.project, run=self.run, count=total)

    async def _upload_one(self, item: MatchedResult) -> None:
        message = item.result.message

        if self.upload_attachments:
            links = []
            for attachment in item.result.attachments:
                # Unreadable attachments were already reported
                if attachment.content is None:
                    continue
                uploaded = await self.api.upload_file(attachment.content, attachment.filename)
                links.append((attachment.filename, uploaded.url))
            if links:
                message += f"\n<h4>Attachments:</h4>\n{link_list(links)}"

        await self.api.submit_result(
            self.project, self.run, item.tcase.id, item.result.status, message
        )
