"""
Warplet Routes
===============
Resolve a Warplet, transform it into a Buttlet, and report its status.

GET  /warplet/status?fid=  — Transform + mint status (never fails on upstream errors)
GET  /warplet/{fid}        — Resolve the source Warplet image
POST /warplet/transform    — Generate, pin and record the Buttlet for a fid
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from errors import AssetNotFound, InvalidIdentifier
from signer import UINT256_MAX

logger = logging.getLogger("buttlets-portal.warplet")

router = APIRouter(prefix="/warplet", tags=["warplet"])

RESOLVE_CACHE_CONTROL = "s-maxage=60, stale-while-revalidate=300"
NOT_FOUND_CACHE_CONTROL = "s-maxage=30, stale-while-revalidate=120"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class TransformRequest(BaseModel):
    fid: int = Field(gt=0, le=UINT256_MAX, description="Farcaster id / Warplet token id")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_fid(value: Optional[str]) -> int:
    if value is None or value == "":
        raise InvalidIdentifier("fid query param is required")
    try:
        fid = int(value)
    except ValueError:
        raise InvalidIdentifier("fid must be a positive integer")
    if fid <= 0 or fid > UINT256_MAX:
        raise InvalidIdentifier("fid must be a positive integer")
    return fid


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/status")
async def warplet_status(
    request: Request,
    fid: Optional[str] = Query(default=None, description="Farcaster id"),
):
    """Return whether the fid has a Buttlet recorded and whether it was minted."""
    fid_num = parse_fid(fid)
    return await request.state.pipeline.get_status(fid_num)


@router.get("/{fid}")
async def resolve_warplet(fid: str, request: Request):
    """Resolve the Warplet's token URI and image URL."""
    fid_num = parse_fid(fid)
    try:
        source = await request.state.pipeline.resolve_source(fid_num)
    except AssetNotFound as exc:
        return JSONResponse(
            status_code=404,
            content=exc.to_dict(),
            headers={"Cache-Control": NOT_FOUND_CACHE_CONTROL},
        )

    return JSONResponse(
        status_code=200,
        content={"tokenId": fid_num, "tokenUri": source.token_uri, "image": source.image},
        headers={"Cache-Control": RESOLVE_CACHE_CONTROL},
    )


@router.post("/transform")
async def transform_warplet(body: TransformRequest, request: Request):
    """Transform the Warplet for ``fid`` into a Buttlet, once.

    Returns 200 with the new record, or 409 with the existing record when the
    fid was already transformed (including by a concurrent request).
    """
    result = await request.state.pipeline.begin_transform(body.fid)

    if not result.created:
        return JSONResponse(
            status_code=409,
            content={"error": "Transform already exists for this fid", **result.record.to_response()},
        )
    return result.record.to_response()
