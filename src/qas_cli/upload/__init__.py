"""Matching results to QA Sphere test cases and uploading them."""

from qas_cli.upload.handler import (
    ResultUploadCommandHandler,
    UploadDefaults,
    UploadOptions,
    UploadSummary,
)
from qas_cli.upload.uploader import MatchedResult, ResultUploader

__all__ = [
    "MatchedResult",
    "ResultUploadCommandHandler",
    "ResultUploader",
    "UploadDefaults",
    "UploadOptions",
    "UploadSummary",
]
