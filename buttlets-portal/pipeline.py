"""
Transform-and-mint pipeline.

Per fid, a transform moves through

    UNRESOLVED -> RESOLVING -> GENERATING -> UPLOADING -> RECORDED

and can stop in NOT_FOUND, SOURCE_FETCH_FAILED, GENERATION_FAILED,
UPLOAD_FAILED or ALREADY_RECORDED. Nothing is retried. Steps before the
ledger insert have no visible side effects (a re-pinned image gets the same
CID), so a client may retry the whole request. Concurrent requests for one
fid race on the ledger insert; the loser re-reads and returns the winner's
record.

All collaborators are injected so the pipeline can run against fakes.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp
import httpx
from google.cloud import firestore

from chain import Erc721Registry
from errors import (
    AssetNotFound,
    InvalidIdentifier,
    PortalError,
    TransformExists,
    TransformNotRecorded,
    UpstreamFailure,
    ValidationFailed,
)
from image_fetcher import ImageFetcher
from image_transformer import ImageTransformer
from ipfs_store import IpfsStore, PinnedContent
from ledger import TransformLedger, TransformRecord
from mint_status import MintStatus, MintStatusChecker
from settings import Settings
from signer import UINT256_MAX, AuthorizationSigner, MintAuthorization
from source_resolver import SourceAsset, SourceResolver

logger = logging.getLogger("buttlets-portal.pipeline")


class TransformStage(str, Enum):
    UNRESOLVED = "UNRESOLVED"
    RESOLVING = "RESOLVING"
    GENERATING = "GENERATING"
    UPLOADING = "UPLOADING"
    RECORDED = "RECORDED"


class TransformOutcome(str, Enum):
    RECORDED = "RECORDED"
    NOT_FOUND = "NOT_FOUND"
    SOURCE_FETCH_FAILED = "SOURCE_FETCH_FAILED"
    GENERATION_FAILED = "GENERATION_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    ALREADY_RECORDED = "ALREADY_RECORDED"


@dataclass
class TransformResult:
    record: TransformRecord
    outcome: TransformOutcome

    @property
    def created(self) -> bool:
        return self.outcome is TransformOutcome.RECORDED


def require_fid(fid) -> int:
    if isinstance(fid, bool) or not isinstance(fid, int) or fid <= 0 or fid > UINT256_MAX:
        raise InvalidIdentifier("fid must be a positive integer")
    return fid


@contextmanager
def _failing_as(fid: int, outcome: TransformOutcome):
    """Tag any failure inside the block with the terminal ``outcome``.

    AssetNotFound keeps its own NOT_FOUND outcome and 404 status. Everything
    else becomes a 500 upstream failure, whatever its original type.
    """
    try:
        yield
    except AssetNotFound:
        raise
    except Exception as exc:
        message = exc.message if isinstance(exc, PortalError) else str(exc) or type(exc).__name__
        logger.error("Transform fid=%s failed (%s): %s", fid, outcome.value, message)
        raise UpstreamFailure(message, outcome=outcome.value) from exc


@contextmanager
def _ledger_access(fid: int):
    """Surface ledger outages as UpstreamFailure. Typed portal errors pass through."""
    try:
        yield
    except PortalError:
        raise
    except Exception as exc:
        logger.error("Ledger access failed for fid=%s: %s", fid, exc)
        raise UpstreamFailure(f"Transform ledger unavailable: {exc}") from exc


class TransformPipeline:
    def __init__(
        self,
        ledger: TransformLedger,
        resolver: SourceResolver,
        fetcher: ImageFetcher,
        transformer: ImageTransformer,
        store: IpfsStore,
        signer: AuthorizationSigner,
        mint_checker: MintStatusChecker,
    ):
        self.ledger = ledger
        self.resolver = resolver
        self.fetcher = fetcher
        self.transformer = transformer
        self.store = store
        self.signer = signer
        self.mint_checker = mint_checker

    # -- resolve source -----------------------------------------------------

    async def resolve_source(self, fid: int) -> SourceAsset:
        return await self.resolver.resolve(require_fid(fid))

    # -- begin transform ----------------------------------------------------

    async def begin_transform(self, fid: int) -> TransformResult:
        fid = require_fid(fid)

        with _ledger_access(fid):
            existing = await self.ledger.get(fid)
        if existing:
            logger.info("fid=%s already transformed (cid=%s)", fid, existing.cid)
            return TransformResult(existing, TransformOutcome.ALREADY_RECORDED)

        logger.info("fid=%s stage=%s", fid, TransformStage.RESOLVING.value)
        with _failing_as(fid, TransformOutcome.SOURCE_FETCH_FAILED):
            source = await self.resolver.resolve(fid)
            fetched = await self.fetcher.fetch_image(source.image)

        logger.info("fid=%s stage=%s", fid, TransformStage.GENERATING.value)
        with _failing_as(fid, TransformOutcome.GENERATION_FAILED):
            generated = await self.transformer.transform(fetched.data, fetched.mime_type)

        logger.info("fid=%s stage=%s", fid, TransformStage.UPLOADING.value)
        with _failing_as(fid, TransformOutcome.UPLOAD_FAILED):
            pinned = await self.store.upload(
                generated.data, generated.mime_type, name=f"buttlet-{fid}.png"
            )

        try:
            with _ledger_access(fid):
                record = await self.ledger.insert(
                    fid=fid,
                    cid=pinned.cid,
                    gateway_url=pinned.gateway_url,
                    image_url=pinned.gateway_url,
                )
        except TransformExists:
            with _ledger_access(fid):
                winner = await self.ledger.get(fid)
            if winner is None:
                raise UpstreamFailure(
                    "Ledger rejected insert but no record was found",
                    outcome=TransformOutcome.ALREADY_RECORDED.value,
                )
            logger.info("fid=%s lost insert race; returning cid=%s", fid, winner.cid)
            return TransformResult(winner, TransformOutcome.ALREADY_RECORDED)

        logger.info("fid=%s stage=%s cid=%s", fid, TransformStage.RECORDED.value, record.cid)
        return TransformResult(record, TransformOutcome.RECORDED)

    # -- status -------------------------------------------------------------

    async def get_status(self, fid: int) -> dict:
        """Ledger and mint lookups in parallel. Never raises for upstream errors."""
        fid = require_fid(fid)
        transform, mint = await asyncio.gather(
            self.ledger.get(fid),
            self.mint_checker.check(fid),
            return_exceptions=True,
        )
        if isinstance(transform, Exception):
            logger.warning("Ledger lookup failed for fid=%s: %s", fid, transform)
            transform = None
        if isinstance(mint, Exception):
            logger.warning("Mint status lookup failed for fid=%s: %s", fid, mint)
            mint = MintStatus(has_minted=False, owner=None)

        status = {
            "fid": fid,
            "hasTransformed": transform is not None,
            "transform": (
                {
                    "cid": transform.cid,
                    "gatewayUrl": transform.gateway_url,
                    "imageUrl": transform.image_url,
                    "createdAt": transform.created_at.isoformat(),
                }
                if transform
                else None
            ),
            "hasMinted": mint.has_minted,
            "owner": mint.owner,
        }
        logger.info(
            "Status fid=%s transformed=%s minted=%s owner=%s",
            fid, status["hasTransformed"], mint.has_minted, mint.owner,
        )
        return status

    # -- authorization ------------------------------------------------------

    async def issue_authorization(
        self,
        fid: int,
        cid: str,
        recipient: str,
        deadline: Optional[int] = None,
    ) -> MintAuthorization:
        """Sign a mint permit for the CID recorded for ``fid``.

        Raises:
            TransformNotRecorded: The fid has no ledger record.
            ValidationFailed: ``cid`` is not the recorded CID.
        """
        fid = require_fid(fid)
        with _ledger_access(fid):
            record = await self.ledger.get(fid)
        if record is None:
            logger.info("Mint permit refused: fid=%s has no recorded transform", fid)
            raise TransformNotRecorded(fid)
        if cid != record.cid:
            logger.info("Mint permit refused: fid=%s cid=%s, recorded cid=%s", fid, cid, record.cid)
            raise ValidationFailed("cid does not match recorded transform")
        return self.signer.sign(fid=fid, cid=record.cid, recipient=recipient, deadline=deadline)

    # -- direct upload ------------------------------------------------------

    async def upload_image(self, data: bytes, mime_type: str, name: str = "image.png") -> PinnedContent:
        return await self.store.upload(data, mime_type, name=name)


# ---------------------------------------------------------------------------
# Construction from settings
# ---------------------------------------------------------------------------


class PortalResources:
    """Long-lived client handles owned by the application lifespan."""

    def __init__(self, settings: Settings):
        self.db = firestore.AsyncClient(
            project=settings.gcp_project,
            database=settings.firestore_database,
        )
        self.http = httpx.AsyncClient(follow_redirects=True)
        self.session = aiohttp.ClientSession(headers={"User-Agent": "ButtletsPortal/1.0"})
        self.source_registry = Erc721Registry(settings.source_rpc_url, settings.warplets_contract_address)
        self.mint_registry = (
            Erc721Registry(settings.resolved_mint_rpc_url, settings.contract_address)
            if settings.contract_address
            else None
        )

    async def close(self):
        await self.http.aclose()
        await self.session.close()
        await self.source_registry.close()
        if self.mint_registry:
            await self.mint_registry.close()
        self.db.close()


def build_pipeline(settings: Settings, resources: PortalResources) -> TransformPipeline:
    return TransformPipeline(
        ledger=TransformLedger(resources.db, collection=settings.transforms_collection),
        resolver=SourceResolver(resources.source_registry, resources.http, gateway=settings.ipfs_gateway),
        fetcher=ImageFetcher(session=resources.session),
        transformer=ImageTransformer(settings.gemini_api_key, model_id=settings.gemini_model_id),
        store=IpfsStore(resources.http, settings.pinata_jwt, gateway=settings.pinata_gateway),
        signer=AuthorizationSigner(
            settings.contract_address,
            settings.chain_id,
            settings.verifier_private_key,
        ),
        mint_checker=MintStatusChecker(resources.mint_registry),
    )
