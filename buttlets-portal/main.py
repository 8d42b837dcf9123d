"""
Buttlets Portal - FastAPI backend for the Buttlets mini app

Turns a Warplet (ERC-721 on Base, token id = Farcaster fid) into an
AI-generated Buttlet: resolves the source image on-chain, generates the
derivative with Gemini, pins it to IPFS via Pinata, records it once per fid
in Firestore, and signs mint permits for the Buttlets contract.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from errors import PortalError
from pipeline import PortalResources, TransformPipeline, build_pipeline
from routes.ipfs import router as ipfs_router
from routes.mint import router as mint_router
from routes.warplet import router as warplet_router
from settings import Settings

logger = logging.getLogger("buttlets-portal")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# MCP Server (streamable HTTP for Cloud Run hosting)
# ---------------------------------------------------------------------------

def create_mcp_app():
    """Create the MCP HTTP application, or None if it cannot be built."""
    try:
        from mcp_server import mcp
        mcp_app = mcp.http_app(path="/", stateless_http=True)
        logger.info("MCP server created successfully")
        return mcp_app
    except Exception as e:
        logger.warning("MCP server creation failed: %s; MCP endpoint disabled", e)
        return None


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[TransformPipeline] = None,
    with_mcp: bool = True,
) -> FastAPI:
    """Build the portal app.

    When ``pipeline`` is given (tests), the lifespan does not open any
    external clients and uses it as is.
    """
    settings = settings or Settings.from_env()
    mcp_app = create_mcp_app() if with_mcp else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resources = None
        if app.state.pipeline is None:
            logger.info(
                "Initialising clients: project=%s collection=%s chain=%s",
                settings.gcp_project, settings.transforms_collection, settings.chain_id,
            )
            resources = PortalResources(settings)
            app.state.pipeline = build_pipeline(settings, resources)

        signer = app.state.pipeline.signer
        if not signer.configured:
            logger.error("Mint signing disabled: CONTRACT_ADDRESS and VERIFIER_PRIVATE_KEY are required")
        else:
            logger.info("Mint signer %s for contract %s", signer.signer_address, signer.contract_address)

        logger.info("Buttlets Portal ready")

        if mcp_app and hasattr(mcp_app, "lifespan") and mcp_app.lifespan:
            async with mcp_app.lifespan(mcp_app):
                logger.info("MCP session manager started")
                yield
        else:
            yield

        logger.info("Shutting down Buttlets Portal")
        if resources:
            await resources.close()

    app = FastAPI(
        title="Buttlets Portal",
        description=(
            "Transform a Warplet into a Buttlet, pin it to IPFS and obtain a "
            "signed permit to mint it on Base."
        ),
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.settings = settings

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def mcp_trailing_slash(request: Request, call_next):
        """Rewrite /mcp to /mcp/ so MCP clients don't get a 307 redirect on POST."""
        if request.url.path == "/mcp":
            request.scope["path"] = "/mcp/"
        return await call_next(request)

    @app.middleware("http")
    async def attach_pipeline(request: Request, call_next):
        """Inject the shared pipeline into request state for route handlers."""
        request.state.pipeline = app.state.pipeline
        response: Response = await call_next(request)
        return response

    # -----------------------------------------------------------------------
    # Error rendering
    # -----------------------------------------------------------------------

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ())[1:]) or 'body'}: {e.get('msg')}"
            for e in errors
        )
        return JSONResponse(
            status_code=400,
            content={"error": message or "Invalid request", "kind": "validation_error"},
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    app.include_router(warplet_router)
    app.include_router(mint_router)
    app.include_router(ipfs_router)

    if mcp_app:
        app.mount("/mcp", mcp_app)
        logger.info("MCP server mounted at /mcp")

    @app.get("/health", tags=["health"])
    async def health():
        """Service health check."""
        current = app.state.pipeline
        return {
            "status": "ok",
            "service": "buttlets-portal",
            "version": VERSION,
            "chain_id": settings.chain_id,
            "signing_configured": bool(current and current.signer.configured),
            "mcp_endpoint": "/mcp" if mcp_app else None,
        }

    return app


app = create_app()
