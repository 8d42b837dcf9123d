"""
Mint Routes
============
POST /mint/sign — Issue a signed mint permit for a recorded Buttlet.

The fid must have a transform in the ledger and the cid must be the one
recorded for it (404 and 400 otherwise).

Contract address and chain id are taken from server configuration only;
if a client sends them they are ignored.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from signer import UINT256_MAX

logger = logging.getLogger("buttlets-portal.mint")

router = APIRouter(prefix="/mint", tags=["mint"])


class SignRequest(BaseModel):
    fid: int = Field(gt=0, le=UINT256_MAX)
    cid: str = Field(min_length=1, description="IPFS CID of the recorded Buttlet")
    recipient: str = Field(description="Wallet that will receive the token")
    deadline: Optional[int] = Field(
        default=None,
        gt=0,
        le=UINT256_MAX,
        description="Unix timestamp after which the permit is void (default: now + 30 min)",
    )


@router.post("/sign")
async def sign_mint(body: SignRequest, request: Request):
    authorization = await request.state.pipeline.issue_authorization(
        fid=body.fid,
        cid=body.cid,
        recipient=body.recipient,
        deadline=body.deadline,
    )
    return authorization.to_response()
