#!/usr/bin/env python3
"""
Buttlets MCP Server
====================
Model Context Protocol server that lets agents discover the Buttlets Portal
HTTP API. Each tool returns the request an agent should make; the tools do
not call the pipeline themselves.

Run standalone:  python mcp_server.py
Transport: stdio (standard MCP transport); mounted at /mcp by main.py.

Tools provided:
  - get_warplet            -- Resolve a Warplet's source image
  - transform_warplet      -- Turn a Warplet into a Buttlet (once per fid)
  - get_warplet_status     -- Transform + mint status for a fid
  - request_mint_signature -- Signed mint permit for a recorded Buttlet
"""

from __future__ import annotations

import json
import os
from typing import Optional

from fastmcp import FastMCP

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

BASE_API_URL = os.environ.get("PORTAL_URL", "http://localhost:8080").rstrip("/")
CHAIN_ID = os.environ.get("CHAIN_ID", "8453")


def endpoint(method: str, path: str, **extra) -> str:
    """JSON descriptor of one portal HTTP call."""
    return json.dumps({"action": method, "url": f"{BASE_API_URL}{path}", **extra}, indent=2)


# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "buttlets-portal",
    instructions=(
        "Buttlets Portal: turns a Warplet (ERC-721 on Base, token id = Farcaster fid) "
        "into an AI-generated Buttlet, pins it to IPFS and signs mint permits.\n\n"
        "Flow: get_warplet -> transform_warplet -> request_mint_signature, then submit "
        "the signature to the Buttlets contract. get_warplet_status reports progress.\n\n"
        "Each fid can be transformed exactly once; repeat requests return HTTP 409 "
        "with the existing CID."
    ),
)


@mcp.tool()
def get_warplet(fid: int) -> str:
    """Resolve the Warplet for a fid to its token URI and image URL.

    Args:
        fid: Farcaster id (the Warplet token id).
    """
    return endpoint(
        "GET",
        f"/warplet/{fid}",
        responses={"200": "{tokenId, tokenUri, image}", "404": "No Warplet for this fid"},
    )


@mcp.tool()
def transform_warplet(fid: int) -> str:
    """Generate the Buttlet for a fid. Slow: expect up to a couple of minutes.

    Args:
        fid: Farcaster id (the Warplet token id).
    """
    return endpoint(
        "POST",
        "/warplet/transform",
        body={"fid": fid},
        responses={
            "200": "{fid, cid, gatewayUrl, imageUrl, createdAt}",
            "409": "Already transformed; body carries the existing cid",
            "404": "No Warplet for this fid",
        },
        note="Safe to retry on 5xx. Never produces a second Buttlet for the same fid.",
    )


@mcp.tool()
def get_warplet_status(fid: int) -> str:
    """Check whether a fid has a Buttlet recorded and whether it was minted.

    Args:
        fid: Farcaster id.
    """
    return endpoint(
        "GET",
        "/warplet/status",
        params={"fid": fid},
        note="hasMinted=false can also mean the chain lookup failed.",
    )


@mcp.tool()
def request_mint_signature(
    fid: int,
    cid: str,
    recipient: str,
    deadline: Optional[int] = None,
) -> str:
    """Request a signed mint permit for a recorded Buttlet.

    Args:
        fid: Farcaster id.
        cid: IPFS CID returned by transform_warplet.
        recipient: Wallet address that will receive the token.
        deadline: Optional unix timestamp; defaults to 30 minutes from now.
    """
    body = {"fid": fid, "cid": cid, "recipient": recipient}
    if deadline is not None:
        body["deadline"] = deadline
    return endpoint(
        "POST",
        "/mint/sign",
        body=body,
        chain_id=CHAIN_ID,
        responses={
            "200": "{signature, signer, digest, fid, recipient, cid, contractAddress, chainId, deadline}",
            "404": "No transform recorded for this fid",
            "400": "cid does not match the recorded transform, or bad recipient",
        },
        note="contractAddress and chainId in the response are the server's; submit them unchanged.",
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run()
