"""Async client for the QA Sphere public API.

Usage:
    async with QasApiClient("https://acme.eu1.qasphere.com", token) as api:
        tcases = await api.get_run_test_cases("PRJ", 23)
        await api.submit_result("PRJ", 23, tcases[0].id, ResultStatus.PASSED, "")
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from qas_cli.api.models import CreatedTestCase, Folder, Paginated, RemoteTestCase, UploadedFile
from qas_cli.core.exceptions import QasApiError
from qas_cli.core.models import ResultStatus
from qas_cli.logging import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/public/v0"
DEFAULT_TIMEOUT = 60.0


class QasApiClient:
    """Client for the QA Sphere public API, one instance per upload.

    Every failure, including transport errors and unexpected response
    bodies, is raised as ``QasApiError`` carrying the server's message.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Instance URL, e.g. ``https://acme.eu1.qasphere.com``.
            token: QA Sphere API key.
            transport: Optional transport, used by tests to mock the server.
        """
        if not token:
            raise ValueError("QA Sphere API key is required")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}{API_PREFIX}",
            headers={"Authorization": f"ApiKey {token}", "Accept": "application/json"},
            timeout=DEFAULT_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> QasApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        logger.debug("API request", method=method, endpoint=endpoint)
        try:
            return await self._client.request(method, endpoint, **kwargs)
        except httpx.RequestError as e:
            raise QasApiError(f"Request failed: {e}") from e

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an authenticated request and return the decoded JSON body.

        Raises:
            QasApiError: On transport errors and non-2xx responses.
        """
        response = await self._send(method, endpoint, **kwargs)

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            return body

        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str):
            message = response.reason_phrase or f"HTTP {response.status_code}"
        raise QasApiError(message, status_code=response.status_code)

    @staticmethod
    def _validate(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise QasApiError(f"Unexpected response: {e}") from e

    async def project_exists(self, project: str) -> bool:
        response = await self._send("GET", f"/project/{project}")
        return response.is_success

    async def get_run_test_cases(self, project: str, run: int) -> list[RemoteTestCase]:
        """List the test cases included in a run."""
        data = await self._request(
            "GET", f"/project/{project}/run/{run}/tcase", params={"include": "folder"}
        )
        tcases = data.get("tcases") if isinstance(data, dict) else None
        return [self._validate(RemoteTestCase, t) for t in tcases or []]

    async def get_test_cases_by_sequence(
        self, project: str, seq_ids: Sequence[str], page: int = 1, limit: int = 50
    ) -> Paginated[RemoteTestCase]:
        """Look up test cases by marker (``PRJ-012``)."""
        data = await self._request(
            "POST",
            f"/project/{project}/tcase/seq",
            json={"seqIds": list(seq_ids), "page": page, "limit": limit},
        )
        return self._validate(Paginated[RemoteTestCase], data)

    async def get_test_cases(
        self,
        project: str,
        folders: Sequence[int] | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Paginated[RemoteTestCase]:
        params: list[tuple[str, str | int]] = [("page", page), ("limit", limit)]
        params += [("folders", folder) for folder in folders or []]
        data = await self._request("GET", f"/project/{project}/tcase", params=params)
        return self._validate(Paginated[RemoteTestCase], data)

    async def get_folders(
        self, project: str, search: str | None = None, page: int = 1, limit: int = 50
    ) -> Paginated[Folder]:
        params: dict[str, str | int] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        data = await self._request("GET", f"/project/{project}/tcase/folders", params=params)
        return self._validate(Paginated[Folder], data)

    async def create_test_cases(
        self, project: str, folder_path: Sequence[str], tcases: Sequence[dict[str, Any]]
    ) -> list[CreatedTestCase]:
        """Create test cases in a folder, creating the folder path as needed.

        Args:
            project: Project code.
            folder_path: Folder titles from the root, e.g. ``["cli-import"]``.
            tcases: Items of the form ``{"title": ..., "tags": [...]}``.

        Returns:
            The created test cases, in request order.
        """
        data = await self._request(
            "POST",
            f"/project/{project}/tcase/bulk",
            json={"folderPath": list(folder_path), "tcases": list(tcases)},
        )
        created = data.get("tcases") if isinstance(data, dict) else None
        return [self._validate(CreatedTestCase, t) for t in created or []]

    async def create_run(
        self,
        project: str,
        title: str,
        description: str,
        tcase_ids: Sequence[str],
        run_type: str = "static_struct",
    ) -> int:
        """Create a run containing ``tcase_ids`` and return its id."""
        data = await self._request(
            "POST",
            f"/project/{project}/run",
            json={
                "title": title,
                "description": description,
                "type": run_type,
                "queryPlans": [{"tcaseIds": list(tcase_ids)}],
            },
        )
        if not isinstance(data, dict) or "id" not in data:
            raise QasApiError("Unexpected response: run id missing")
        return int(data["id"])

    async def upload_file(self, content: bytes, filename: str) -> UploadedFile:
        data = await self._request("POST", "/file", files={"file": (filename, content)})
        return self._validate(UploadedFile, data)

    async def submit_result(
        self, project: str, run: int, tcase_id: str, status: ResultStatus, comment: str
    ) -> int:
        """Record a result for a test case of a run and return the result id."""
        data = await self._request(
            "POST",
            f"/project/{project}/run/{run}/tcase/{tcase_id}/result",
            json={"status": status.value, "comment": comment},
        )
        return int(data["id"]) if isinstance(data, dict) and "id" in data else 0
