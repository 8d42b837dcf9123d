"""
IPFS Routes
============
POST /ipfs/upload-image — Pin an image to IPFS through Pinata.

Accepts either multipart/form-data with a ``file`` field, or JSON
``{"imageBase64": ..., "mimeType": "image/png", "name": "image.png"}``.
Only image MIME types up to 10 MiB are accepted.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re

from fastapi import APIRouter, Request
from starlette.datastructures import UploadFile

from errors import PayloadTooLarge, UnsupportedContentType, ValidationFailed
from ipfs_store import MAX_BYTES, validate_image

logger = logging.getLogger("buttlets-portal.ipfs-route")

router = APIRouter(prefix="/ipfs", tags=["ipfs"])

_DATA_URL_PREFIX = re.compile(r"^data:[^;]+;base64,")


def decode_base64_image(image_base64: str) -> bytes:
    """Decode base64 image data, dropping a ``data:<mime>;base64,`` prefix."""
    clean = _DATA_URL_PREFIX.sub("", image_base64.strip())
    try:
        return base64.b64decode(clean, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationFailed("imageBase64 is not valid base64")


def _optional_str(body: dict, key: str, default: str) -> str:
    value = body.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ValidationFailed(f"'{key}' must be a string")
    return value


async def _read_upload(upload: UploadFile) -> bytes:
    if upload.size is not None and upload.size > MAX_BYTES:
        raise PayloadTooLarge(f"File too large (max {MAX_BYTES} bytes)")
    # Never buffer more than one byte past the limit.
    data = await upload.read(MAX_BYTES + 1)
    if len(data) > MAX_BYTES:
        raise PayloadTooLarge(f"File too large (max {MAX_BYTES} bytes)")
    return data


@router.post("/upload-image")
async def upload_image(request: Request):
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type:
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationFailed("Field 'file' is required (multipart/form-data)")
        data = await _read_upload(upload)
        mime_type = upload.content_type or ""
        name = upload.filename or "image.png"

    elif "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        image_base64 = body.get("imageBase64")
        if not image_base64 or not isinstance(image_base64, str):
            raise ValidationFailed("Body must include 'imageBase64' (application/json)")
        mime_type = _optional_str(body, "mimeType", "image/png")
        name = _optional_str(body, "name", "image.png")
        data = decode_base64_image(image_base64)

    else:
        raise UnsupportedContentType(
            "Unsupported Content-Type. Use multipart/form-data or application/json"
        )

    validate_image(data, mime_type)
    pinned = await request.state.pipeline.upload_image(data, mime_type, name=name)
    return {"cid": pinned.cid, "gatewayUrl": pinned.gateway_url}
