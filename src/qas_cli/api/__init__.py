"""Client for the QA Sphere public API."""

from qas_cli.api.client import QasApiClient
from qas_cli.api.models import CreatedTestCase, Folder, Paginated, RemoteTestCase, UploadedFile

__all__ = [
    "CreatedTestCase",
    "Folder",
    "Paginated",
    "QasApiClient",
    "RemoteTestCase",
    "UploadedFile",
]
