"""
Transform Ledger - one Buttlet per fid, in Firestore.

Storage: Firestore collection ``warplet_transforms/{fid}``

The document id is the fid and records are written with ``create()``, which
fails if the document already exists. That precondition is the only thing
enforcing "at most one transform per fid"; ``get()`` before insert is just a
shortcut for the common case. Records are never updated or deleted here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud.firestore import AsyncClient

from errors import TransformExists

logger = logging.getLogger("buttlets-portal.ledger")

COLLECTION = "warplet_transforms"


@dataclass(frozen=True)
class TransformRecord:
    fid: int
    cid: str
    gateway_url: str
    image_url: Optional[str]
    created_at: datetime

    def to_response(self) -> dict:
        return {
            "fid": self.fid,
            "cid": self.cid,
            "gatewayUrl": self.gateway_url,
            "imageUrl": self.image_url,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_doc(cls, data: dict) -> "TransformRecord":
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            fid=int(data["fid"]),
            cid=data["cid"],
            gateway_url=data["gateway_url"],
            image_url=data.get("image_url"),
            created_at=created_at,
        )


class TransformLedger:
    """Firestore-backed, create-only transform store."""

    def __init__(self, db: AsyncClient, collection: str = COLLECTION):
        self._db = db
        self.collection = collection

    def _doc(self, fid: int):
        return self._db.collection(self.collection).document(str(fid))

    async def get(self, fid: int) -> Optional[TransformRecord]:
        doc = await self._doc(fid).get()
        if not doc.exists:
            return None
        return TransformRecord.from_doc(doc.to_dict())

    async def insert(
        self,
        fid: int,
        cid: str,
        gateway_url: str,
        image_url: Optional[str] = None,
    ) -> TransformRecord:
        """Create the record for ``fid``.

        Raises:
            TransformExists: A record for ``fid`` was already created.
        """
        record = TransformRecord(
            fid=fid,
            cid=cid,
            gateway_url=gateway_url,
            image_url=image_url,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self._doc(fid).create({
                "fid": record.fid,
                "cid": record.cid,
                "gateway_url": record.gateway_url,
                "image_url": record.image_url,
                "created_at": record.created_at,
            })
        except AlreadyExists as exc:
            logger.info("Ledger insert rejected, fid=%s already recorded", fid)
            raise TransformExists(fid) from exc

        logger.info("Ledger recorded fid=%s cid=%s", fid, cid)
        return record
