"""
Runtime configuration for the Buttlets Portal.

Every value comes from the environment. Secrets (Gemini key, Pinata JWT,
verifier key, mint contract) may be missing at startup; the component that
needs one raises MissingConfig when it is first used.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel

BASE_MAINNET_CHAIN_ID = 8453

DEFAULT_ALLOWED_ORIGINS = [
    "https://thebuttlets.miniapps.zone",
    "http://localhost:3000",
]


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


class Settings(BaseModel):
    # Firestore ledger
    gcp_project: Optional[str] = None
    firestore_database: str = "(default)"
    transforms_collection: str = "warplet_transforms"

    # Source registry (Warplets ERC-721 on Base)
    base_rpc_url: Optional[str] = None
    warplets_contract_address: str = "0x699727f9e01a822efdcf7333073f0461e5914b4e"
    ipfs_gateway: str = "https://ipfs.io/ipfs"

    # Gemini image generation
    gemini_api_key: Optional[str] = None
    gemini_model_id: str = "gemini-2.5-flash-image"

    # Pinata
    pinata_jwt: Optional[str] = None
    pinata_gateway: Optional[str] = None

    # Mint contract + verifier
    contract_address: Optional[str] = None
    chain_id: int = BASE_MAINNET_CHAIN_ID
    verifier_private_key: Optional[str] = None
    mint_rpc_url: Optional[str] = None

    allowed_origins: list[str] = DEFAULT_ALLOWED_ORIGINS

    @property
    def source_rpc_url(self) -> str:
        return self.base_rpc_url or "https://mainnet.base.org"

    @property
    def resolved_mint_rpc_url(self) -> str:
        """MINT_RPC_URL, else BASE_RPC_URL, else the public RPC for CHAIN_ID."""
        if self.mint_rpc_url:
            return self.mint_rpc_url
        if self.base_rpc_url:
            return self.base_rpc_url
        if self.chain_id == BASE_MAINNET_CHAIN_ID:
            return "https://mainnet.base.org"
        return "https://sepolia.base.org"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = _env("ALLOWED_ORIGINS")
        chain_id = _env("CHAIN_ID")
        return cls(
            gcp_project=_env("GCP_PROJECT"),
            firestore_database=_env("FIRESTORE_DATABASE", "(default)"),
            transforms_collection=_env("TRANSFORMS_COLLECTION", "warplet_transforms"),
            base_rpc_url=_env("BASE_RPC_URL"),
            warplets_contract_address=_env(
                "WARPLETS_CONTRACT_ADDRESS", "0x699727f9e01a822efdcf7333073f0461e5914b4e"
            ),
            ipfs_gateway=_env("IPFS_GATEWAY", "https://ipfs.io/ipfs"),
            gemini_api_key=_env("GEMINI_API_KEY") or _env("NEXT_PUBLIC_GEMINI_API_KEY"),
            gemini_model_id=_env("GEMINI_MODEL_ID", "gemini-2.5-flash-image"),
            pinata_jwt=_env("PINATA_JWT"),
            pinata_gateway=_env("PINATA_GATEWAY"),
            contract_address=_env("CONTRACT_ADDRESS"),
            chain_id=int(chain_id) if chain_id else BASE_MAINNET_CHAIN_ID,
            verifier_private_key=_env("VERIFIER_PRIVATE_KEY"),
            mint_rpc_url=_env("MINT_RPC_URL"),
            allowed_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins
                else DEFAULT_ALLOWED_ORIGINS
            ),
        )
