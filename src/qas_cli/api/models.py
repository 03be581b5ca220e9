"""Response models of the QA Sphere public API."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class Folder(BaseModel):
    id: int
    title: str


class RemoteTestCase(BaseModel):
    """A test case as returned by run and test case endpoints."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    seq: int
    title: str
    folder: Folder | None = None
    folder_id: int | None = Field(None, alias="folderId")


class Paginated(BaseModel, Generic[T]):
    data: list[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 0


class CreatedTestCase(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    seq: int


class UploadedFile(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    url: str
