"""
Mint status - has the Buttlet for a fid been minted?

Looks up ``ownerOf(fid)`` on the Buttlets contract. ERC-721 reverts for a
token that does not exist, and that revert is indistinguishable here from an
RPC outage, so any failure is reported as "not minted". Callers must not read
``has_minted=False`` as proof that the token does not exist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("buttlets-portal.mint-status")


@dataclass
class MintStatus:
    has_minted: bool
    owner: Optional[str] = None


class MintStatusChecker:
    def __init__(self, registry=None):
        # registry is None when CONTRACT_ADDRESS is not configured
        self.registry = registry

    async def check(self, fid: int) -> MintStatus:
        if self.registry is None:
            logger.warning("CONTRACT_ADDRESS not configured; reporting fid=%s as not minted", fid)
            return MintStatus(has_minted=False, owner=None)
        try:
            owner = await self.registry.owner_of(fid)
        except Exception as exc:
            logger.info("ownerOf(%s) failed, treating as not minted: %s", fid, exc)
            return MintStatus(has_minted=False, owner=None)
        return MintStatus(has_minted=True, owner=owner)
