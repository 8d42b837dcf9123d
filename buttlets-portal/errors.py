"""
Error taxonomy shared by the pipeline components and the HTTP layer.

Every error carries the HTTP status and a stable ``kind`` tag. Errors raised
while a transform is in flight also carry ``outcome``, the terminal state of
the transform (see pipeline.TransformOutcome).
"""

from __future__ import annotations

from typing import Optional


class PortalError(Exception):
    """Base class for typed portal failures."""

    status_code = 500
    kind = "upstream_failure"

    def __init__(self, message: str, outcome: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.outcome = outcome

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.outcome:
            body["outcome"] = self.outcome
        return body


# ---------------------------------------------------------------------------
# 404 / 409
# ---------------------------------------------------------------------------


class AssetNotFound(PortalError):
    """The registry has no token for this fid."""

    status_code = 404
    kind = "not_found"

    def __init__(self, fid: int):
        super().__init__(f"No Warplet found for FID {fid}", outcome="NOT_FOUND")
        self.fid = fid


class TransformNotRecorded(PortalError):
    """No transform is recorded for the fid, so there is nothing to mint."""

    status_code = 404
    kind = "not_found"

    def __init__(self, fid: int):
        super().__init__(f"No transform recorded for FID {fid}")
        self.fid = fid


class TransformExists(PortalError):
    """The ledger rejected an insert because a record for the fid exists."""

    status_code = 409
    kind = "already_exists"

    def __init__(self, fid: int):
        super().__init__("Transform already exists for this fid", outcome="ALREADY_RECORDED")
        self.fid = fid


# ---------------------------------------------------------------------------
# 400-class
# ---------------------------------------------------------------------------


class ValidationFailed(PortalError):
    status_code = 400
    kind = "validation_error"


class InvalidIdentifier(ValidationFailed):
    pass


class InvalidRecipient(ValidationFailed):
    pass


class UnsupportedMediaType(ValidationFailed):
    pass


class PayloadTooLarge(ValidationFailed):
    status_code = 413


class UnsupportedContentType(ValidationFailed):
    status_code = 415


# ---------------------------------------------------------------------------
# Upstream (500)
# ---------------------------------------------------------------------------


class UpstreamFailure(PortalError):
    status_code = 500
    kind = "upstream_failure"


class FetchFailed(UpstreamFailure):
    pass


class MetadataMalformed(UpstreamFailure):
    pass


class GenerationEmpty(UpstreamFailure):
    pass


class UploadFailed(UpstreamFailure):
    pass


class MissingConfig(UpstreamFailure):
    """Required server configuration is absent. Never defaulted."""

    def __init__(self, name: str):
        super().__init__(f"Missing required env: {name}")
        self.name = name
