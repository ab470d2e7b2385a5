"""Client for the content pinning (upload) service."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import requests

from ..constants import (
    DOCUMENT_CONTENT_TYPES,
    IMAGE_CONTENT_TYPES,
    MAX_DOCUMENT_SIZE,
    MAX_IMAGE_SIZE,
    MIN_FILE_SIZE,
)
from ..exceptions import NetworkError, ValidationError
from ..types import PinResult
from .config import PinningConfig

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


@dataclass(frozen=True)
class UploadFile:
    """In-memory file payload."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return self.name.rsplit(".", 1)[-1] if "." in self.name else "bin"


def format_file_size(size: int) -> str:
    """Render a byte count for display, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[index]}"


def validate_file(
    file: UploadFile | None,
    *,
    max_size: int = MAX_IMAGE_SIZE,
    allowed_types: Sequence[str] = IMAGE_CONTENT_TYPES,
    min_size: int = MIN_FILE_SIZE,
) -> None:
    """Raise :class:`ValidationError` when ``file`` cannot be uploaded as given."""
    if file is None:
        raise ValidationError("No file provided", field="file")
    if file.size < min_size:
        raise ValidationError(
            f"File too small. Minimum size is {min_size} bytes", field="size", value=file.size
        )
    if file.size > max_size:
        raise ValidationError(
            f"File too large. Maximum size is {round(max_size / 1024 / 1024)}MB",
            field="size",
            value=file.size,
        )
    if allowed_types and file.content_type not in allowed_types:
        raise ValidationError(
            f"Invalid file type. Allowed types: {', '.join(allowed_types)}",
            field="content_type",
            value=file.content_type,
        )


class PinningClient:
    """Upload files and JSON documents to the pinning service.

    Calls are blocking (``requests``); from async code run them through
    ``asyncio.to_thread``.
    """

    def __init__(
        self,
        config: PinningConfig | None = None,
        session: requests.Session | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or PinningConfig()
        self._session = session or requests.Session()
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def gateway_url(self, cid: str) -> str:
        return f"{self._config.public_gateway}{cid}" if cid else ""

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------
    def upload_file(self, file: UploadFile, file_name: str | None = None) -> PinResult:
        if file is None:
            raise ValidationError("No file provided", field="file")

        timestamp = self._timestamp()
        final_name = file_name or f"{timestamp}-{file.name}"
        metadata = {
            "name": final_name,
            "keyvalues": {
                "project": self._config.project_label,
                "timestamp": str(timestamp),
                "originalName": file.name,
            },
        }

        logger.info("Uploading file to pinning service: %s", final_name)
        payload = self._post(
            self._config.file_url,
            timeout=self._config.file_timeout,
            files={"file": (final_name, file.content, file.content_type)},
            data={
                "pinataMetadata": json.dumps(metadata),
                "pinataOptions": json.dumps({"cidVersion": 1}),
            },
        )
        return self._result(payload, final_name)

    def upload_json(self, data: Any, file_name: str | None = None) -> PinResult:
        timestamp = self._timestamp()
        final_name = file_name or f"data-{timestamp}.json"
        body = {
            "pinataContent": data,
            "pinataMetadata": {
                "name": final_name,
                "keyvalues": {
                    "project": self._config.project_label,
                    "type": "json",
                    "timestamp": str(timestamp),
                },
            },
            "pinataOptions": {"cidVersion": 1},
        }

        logger.info("Uploading JSON to pinning service: %s", final_name)
        payload = self._post(self._config.json_url, timeout=self._config.json_timeout, json=body)
        return self._result(payload, final_name)

    def upload_project_image(self, image: UploadFile) -> PinResult:
        validate_file(image, max_size=MAX_IMAGE_SIZE, allowed_types=IMAGE_CONTENT_TYPES)
        return self.upload_file(image, f"project-image-{self._timestamp()}.{image.extension}")

    def upload_project_documents(self, documents: Sequence[UploadFile]) -> list[PinResult]:
        """Upload each document; an empty sequence uploads nothing."""

        for document in documents:
            if document.size > MAX_DOCUMENT_SIZE:
                raise ValidationError(
                    f"File {document.name} is too large. Maximum size is 5MB per file.",
                    field="size",
                    value=document.size,
                )
            if document.content_type not in DOCUMENT_CONTENT_TYPES:
                raise ValidationError(
                    f"File {document.name} has an unsupported type",
                    field="content_type",
                    value=document.content_type,
                )

        timestamp = self._timestamp()
        return [
            self.upload_file(document, f"document-{index}-{timestamp}.{document.extension}")
            for index, document in enumerate(documents, start=1)
        ]

    def upload_profile(self, profile: Mapping[str, Any]) -> PinResult:
        timestamp = self._timestamp()
        document = {**profile, "uploadedAt": timestamp, "version": "1.0"}
        return self.upload_json(document, f"profile-{timestamp}.json")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        if self._config.jwt:
            return {"Authorization": f"Bearer {self._config.jwt}"}
        if self._config.api_key and self._config.secret_key:
            return {
                "pinata_api_key": self._config.api_key,
                "pinata_secret_api_key": self._config.secret_key,
            }
        raise ValidationError(
            "Pinning service not configured. Set a JWT or an API key and secret.",
            field="pinning",
        )

    def _post(self, url: str, *, timeout: float, **kwargs: Any) -> Mapping[str, Any]:
        headers = self._headers()
        try:
            response = self._session.post(url, headers=headers, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            raise NetworkError(
                "Network error: Unable to reach pinning service",
                endpoint=url,
                details={"error": str(exc)},
            ) from exc

        if not response.ok:
            message = _error_message(response)
            logger.error("Pinning upload failed (%s): %s", response.status_code, message)
            raise NetworkError(
                f"Failed to upload to IPFS: {message}",
                endpoint=url,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError(
                "Pinning service returned a non-JSON response", endpoint=url
            ) from exc
        if not isinstance(payload, Mapping) or not payload.get("IpfsHash"):
            raise NetworkError(
                "Pinning service response is missing the content address",
                endpoint=url,
                details={"response": payload},
            )
        return payload

    def _result(self, payload: Mapping[str, Any], file_name: str) -> PinResult:
        cid = str(payload["IpfsHash"])
        logger.info("Upload pinned as %s", cid)
        return PinResult(
            cid=cid, file_name=file_name, url=self.gateway_url(cid), raw_response=dict(payload)
        )

    def _timestamp(self) -> int:
        return int(self._clock() * 1000)


def _error_message(response: requests.Response) -> str:
    if response.status_code == 401:
        return "Unauthorized - Check your pinning service credentials"
    if response.status_code == 429:
        return "Rate limit exceeded - Please try again in a few minutes"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, Mapping):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, Mapping):
                value = value.get("reason") or value.get("details")
            if value:
                return str(value)
    return "Upload failed"
