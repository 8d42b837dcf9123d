"""
Source Resolver - fid -> Warplet image URL.

Reads ``tokenURI(fid)`` from the Warplets contract, decodes the metadata
document (inline ``data:application/json`` URI or an IPFS/HTTP pointer) and
returns the HTTP-resolvable image URL.

Only a failed registry lookup maps to AssetNotFound. Everything after that
(metadata fetch, malformed JSON, missing image) is an upstream failure.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import unquote

import httpx

from errors import AssetNotFound, FetchFailed, MetadataMalformed

logger = logging.getLogger("buttlets-portal.resolver")

METADATA_TIMEOUT = 15.0
IMAGE_FIELDS = ("image", "image_url")


@dataclass
class SourceAsset:
    fid: int
    token_uri: str
    image: str
    metadata: dict[str, Any] = field(default_factory=dict)


def ipfs_to_http(uri: str, gateway: str) -> str:
    """Rewrite ``ipfs://`` URIs through the gateway; other URIs pass through."""
    if not uri or not uri.startswith("ipfs://"):
        return uri
    path = uri[len("ipfs://"):]
    if path.startswith("ipfs/"):
        path = path[len("ipfs/"):]
    return f"{gateway.rstrip('/')}/{path}"


def parse_data_uri_json(uri: str) -> Optional[dict]:
    """Decode a ``data:application/json`` URI.

    Returns None when ``uri`` is not a JSON data URI.
    Raises MetadataMalformed when it is one but cannot be decoded.
    """
    if not uri.startswith("data:application/json"):
        return None

    header, sep, payload = uri.partition(",")
    if not sep or not payload:
        raise MetadataMalformed("Token metadata data URI has no payload")

    try:
        if ";base64" in header:
            text = base64.b64decode(payload).decode("utf-8")
        else:
            text = unquote(payload)
        doc = json.loads(text)
    except (ValueError, UnicodeDecodeError) as exc:
        raise MetadataMalformed(f"Invalid token metadata data URI: {exc}") from exc

    if not isinstance(doc, dict):
        raise MetadataMalformed("Invalid token metadata payload")
    return doc


class SourceResolver:
    """Resolve a Warplet's image through its on-chain metadata."""

    def __init__(self, registry, http: httpx.AsyncClient, gateway: str = "https://ipfs.io/ipfs"):
        self.registry = registry
        self.http = http
        self.gateway = gateway.rstrip("/")

    async def resolve(self, fid: int) -> SourceAsset:
        try:
            token_uri = await self.registry.token_uri(fid)
        except Exception as exc:
            logger.info("tokenURI lookup failed for fid=%s: %s", fid, exc)
            raise AssetNotFound(fid) from exc

        metadata = parse_data_uri_json(token_uri)
        if metadata is None:
            metadata = await self._fetch_metadata(token_uri)

        raw_image = next((metadata[f] for f in IMAGE_FIELDS if metadata.get(f)), None)
        if not raw_image or not isinstance(raw_image, str):
            raise MetadataMalformed("Metadata missing image field")

        image = ipfs_to_http(raw_image, self.gateway)
        logger.info("Resolved fid=%s image=%s", fid, image)
        return SourceAsset(fid=fid, token_uri=token_uri, image=image, metadata=metadata)

    async def _fetch_metadata(self, token_uri: str) -> dict:
        url = ipfs_to_http(token_uri, self.gateway)
        try:
            resp = await self.http.get(
                url,
                headers={"Accept": "application/json", "Cache-Control": "no-cache"},
                timeout=METADATA_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            raise FetchFailed(f"Failed to fetch token metadata: {exc}") from exc

        if not resp.is_success:
            raise FetchFailed(f"Failed to fetch token metadata (HTTP {resp.status_code})")

        try:
            doc = resp.json()
        except ValueError as exc:
            raise MetadataMalformed("Token metadata is not valid JSON") from exc

        if not isinstance(doc, dict):
            raise MetadataMalformed("Invalid token metadata payload")
        return doc
