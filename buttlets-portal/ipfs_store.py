"""
IPFS store client (Pinata v3 uploads).

Pins image bytes to the public IPFS network and returns the CID plus a
gateway URL. The upload response envelope has changed shape across Pinata
API versions, so the CID is looked up through an explicit, ordered list of
known shapes (see CID_PATHS).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from errors import MissingConfig, PayloadTooLarge, UnsupportedMediaType, UploadFailed

logger = logging.getLogger("buttlets-portal.ipfs")

PINATA_UPLOAD_URL = "https://uploads.pinata.cloud/v3/files"
UPLOAD_TIMEOUT = 60.0

MAX_BYTES = 10 * 1024 * 1024  # 10 MiB
ALLOWED_PREFIX = "image/"

# Checked in order; the first string found wins.
CID_PATHS: tuple[tuple[str, ...], ...] = (
    ("data", "cid"),          # v3: {"data": {"cid": ...}}
    ("data", "data", "cid"),  # double-wrapped envelope
    ("cid",),                 # bare object
)


@dataclass
class PinnedContent:
    cid: str
    gateway_url: str


def to_gateway_url(cid: str, configured_gateway: Optional[str] = None) -> str:
    if configured_gateway and configured_gateway.strip():
        host = configured_gateway.strip()
        for scheme in ("https://", "http://"):
            if host.startswith(scheme):
                host = host[len(scheme):]
        host = host.rstrip("/")
        return f"https://{host}/ipfs/{cid}"
    return f"ipfs://{cid}"


def _dig(body: Any, path: tuple[str, ...]) -> Any:
    node = body
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _extract_cid(body: Any) -> Optional[str]:
    for path in CID_PATHS:
        value = _dig(body, path)
        if isinstance(value, str) and value:
            return value
    return None


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict):
            detail = error.get("details") or error.get("reason")
            if isinstance(detail, str) and detail:
                return detail
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return "Pinata upload failed"


def validate_image(data: bytes, mime_type: str) -> None:
    if not isinstance(mime_type, str) or not mime_type.startswith(ALLOWED_PREFIX):
        raise UnsupportedMediaType("Only image MIME types are allowed")
    if len(data) > MAX_BYTES:
        raise PayloadTooLarge(f"File too large (max {MAX_BYTES} bytes)")


class IpfsStore:
    """Upload images to Pinata."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        jwt: Optional[str],
        gateway: Optional[str] = None,
        upload_url: str = PINATA_UPLOAD_URL,
    ):
        self.http = http
        self.jwt = jwt
        self.gateway = gateway
        self.upload_url = upload_url

    async def upload(self, data: bytes, mime_type: str, name: str = "image.png") -> PinnedContent:
        validate_image(data, mime_type)
        if not self.jwt:
            raise MissingConfig("PINATA_JWT")

        try:
            resp = await self.http.post(
                self.upload_url,
                headers={"Authorization": f"Bearer {self.jwt}"},
                files={"file": (name, data, mime_type)},
                data={"network": "public"},
                timeout=UPLOAD_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            raise UploadFailed(f"Pinata upload failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if not resp.is_success:
            message = _error_message(body)
            logger.error("Pinata upload failed (%d): %s", resp.status_code, message)
            raise UploadFailed(message)

        cid = _extract_cid(body)
        if not cid:
            raise UploadFailed("Pinata response missing cid")

        gateway_url = to_gateway_url(cid, self.gateway)
        logger.info("Pinned %s (%d bytes) as %s", name, len(data), cid)
        return PinnedContent(cid=cid, gateway_url=gateway_url)
