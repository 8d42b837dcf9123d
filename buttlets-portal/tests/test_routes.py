# FILE: tests/test_routes.py
"""
Tests for the HTTP surface (main.py + routes/).
Status codes, response shapes and error rendering, against a fake pipeline.
"""

import base64

import pytest
from fastapi.testclient import TestClient

from fakes import (
    FIXED_NOW,
    TEST_CHAIN_ID,
    TEST_CONTRACT,
    FakeFetcher,
    FakeRegistry,
    FakeResolver,
    FakeStore,
    FakeTransformer,
)
from main import create_app
from mint_status import MintStatusChecker
from pipeline import TransformPipeline
from settings import Settings
from signer import AuthorizationSigner

RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x02" * 16


@pytest.fixture
def client(pipeline):
    app = create_app(settings=Settings(), pipeline=pipeline, with_mcp=False)
    with TestClient(app) as test_client:
        yield test_client


def _client_for(pipeline):
    return TestClient(create_app(settings=Settings(), pipeline=pipeline, with_mcp=False))


def _pipeline(ledger, signer, **overrides):
    parts = dict(
        ledger=ledger,
        resolver=FakeResolver(),
        fetcher=FakeFetcher(),
        transformer=FakeTransformer(),
        store=FakeStore(),
        signer=signer,
        mint_checker=MintStatusChecker(FakeRegistry()),
    )
    parts.update(overrides)
    return TransformPipeline(**parts)


# ---------------------------------------------------------------------------
# GET /warplet/{fid}
# ---------------------------------------------------------------------------


class TestResolveWarplet:
    def test_resolves_image(self, client):
        resp = client.get("/warplet/42")

        assert resp.status_code == 200
        assert resp.json() == {
            "tokenId": 42,
            "tokenUri": "ipfs://bafymeta/42.json",
            "image": "https://ipfs.io/ipfs/bafysource/42.png",
        }
        assert resp.headers["cache-control"] == "s-maxage=60, stale-while-revalidate=300"

    def test_unknown_fid_is_404(self, ledger, signer):
        client = _client_for(_pipeline(ledger, signer, resolver=FakeResolver(missing={999})))

        resp = client.get("/warplet/999")

        assert resp.status_code == 404
        assert resp.json()["error"] == "No Warplet found for FID 999"
        assert resp.headers["cache-control"] == "s-maxage=30, stale-while-revalidate=120"

    @pytest.mark.parametrize("fid", ["abc", "0", "-1"])
    def test_bad_fid_is_400(self, client, fid):
        resp = client.get(f"/warplet/{fid}")

        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation_error"


# ---------------------------------------------------------------------------
# POST /warplet/transform
# ---------------------------------------------------------------------------


class TestTransform:
    def test_first_transform_is_200(self, client, store):
        resp = client.post("/warplet/transform", json={"fid": 42})

        assert resp.status_code == 200
        body = resp.json()
        assert body["fid"] == 42
        assert body["cid"] == "bafy123"
        assert body["gatewayUrl"] == "https://gateway.pinata.cloud/ipfs/bafy123"
        assert body["imageUrl"] == body["gatewayUrl"]
        assert "createdAt" in body
        assert store.uploads[0][0] == "buttlet-42.png"

    def test_repeat_transform_is_409_with_existing_cid(self, client, transformer):
        client.post("/warplet/transform", json={"fid": 42})

        resp = client.post("/warplet/transform", json={"fid": 42})

        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "Transform already exists for this fid"
        assert body["cid"] == "bafy123"
        assert transformer.calls == 1

    def test_unknown_fid_is_404(self, ledger, signer):
        client = _client_for(_pipeline(ledger, signer, resolver=FakeResolver(missing={999})))

        resp = client.post("/warplet/transform", json={"fid": 999})

        assert resp.status_code == 404
        assert resp.json()["outcome"] == "NOT_FOUND"

    @pytest.mark.parametrize(
        "overrides, outcome",
        [
            ({"fetcher": FakeFetcher(fail=True)}, "SOURCE_FETCH_FAILED"),
            ({"transformer": FakeTransformer(empty=True)}, "GENERATION_FAILED"),
            ({"store": FakeStore(fail="Invalid JWT")}, "UPLOAD_FAILED"),
        ],
    )
    def test_upstream_failures_are_500(self, ledger, signer, overrides, outcome):
        client = _client_for(_pipeline(ledger, signer, **overrides))

        resp = client.post("/warplet/transform", json={"fid": 42})

        assert resp.status_code == 500
        body = resp.json()
        assert body["outcome"] == outcome
        assert body["kind"] == "upstream_failure"
        assert ledger.records == {}

    def test_ledger_outage_is_typed_500(self, client, ledger):
        ledger.fail_reads = True

        resp = client.post("/warplet/transform", json={"fid": 42})

        assert resp.status_code == 500
        assert resp.json()["kind"] == "upstream_failure"
        assert "firestore unavailable" in resp.json()["error"]

    @pytest.mark.parametrize("payload", [{}, {"fid": 0}, {"fid": -3}, {"fid": "abc"}])
    def test_invalid_body_is_400(self, client, payload):
        resp = client.post("/warplet/transform", json=payload)

        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation_error"


# ---------------------------------------------------------------------------
# GET /warplet/status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_fresh_fid(self, client):
        resp = client.get("/warplet/status", params={"fid": 42})

        assert resp.status_code == 200
        assert resp.json() == {
            "fid": 42,
            "hasTransformed": False,
            "transform": None,
            "hasMinted": False,
            "owner": None,
        }

    def test_transformed_and_minted(self, client, owner_registry):
        client.post("/warplet/transform", json={"fid": 42})
        owner_registry.owners[42] = RECIPIENT

        body = client.get("/warplet/status", params={"fid": 42}).json()

        assert body["hasTransformed"] is True
        assert body["transform"]["cid"] == "bafy123"
        assert body["hasMinted"] is True
        assert body["owner"] == RECIPIENT

    def test_upstream_outage_still_200(self, client, ledger, owner_registry):
        ledger.fail_reads = True
        owner_registry.down = True

        resp = client.get("/warplet/status", params={"fid": 42})

        assert resp.status_code == 200
        assert resp.json()["hasTransformed"] is False
        assert resp.json()["hasMinted"] is False

    @pytest.mark.parametrize("query", ["", "?fid=", "?fid=abc", "?fid=0"])
    def test_bad_fid_is_400(self, client, query):
        resp = client.get(f"/warplet/status{query}")

        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# POST /mint/sign
# ---------------------------------------------------------------------------


class TestMintSign:
    def test_signs_with_server_config(self, client, ledger):
        ledger.seed(42, "bafy123")

        resp = client.post(
            "/mint/sign",
            json={
                "fid": 42,
                "cid": "bafy123",
                "recipient": RECIPIENT,
                "contractAddress": "0x000000000000000000000000000000000000dEaD",
                "chainId": 1,
            },
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["contractAddress"] == TEST_CONTRACT
        assert body["chainId"] == str(TEST_CHAIN_ID)
        assert body["deadline"] == str(FIXED_NOW + 1800)
        assert body["recipient"] == RECIPIENT
        assert body["signature"].startswith("0x")

    def test_signs_after_transform(self, client):
        cid = client.post("/warplet/transform", json={"fid": 42}).json()["cid"]

        resp = client.post("/mint/sign", json={"fid": 42, "cid": cid, "recipient": RECIPIENT})

        assert resp.status_code == 200
        assert resp.json()["cid"] == cid

    def test_explicit_deadline(self, client, ledger):
        ledger.seed(42, "bafy123")

        body = client.post(
            "/mint/sign",
            json={"fid": 42, "cid": "bafy123", "recipient": RECIPIENT, "deadline": FIXED_NOW + 5},
        ).json()

        assert body["deadline"] == str(FIXED_NOW + 5)

    def test_untransformed_fid_is_404(self, client, ledger):
        resp = client.post("/mint/sign", json={"fid": 42, "cid": "bafyNOTPERSISTED", "recipient": RECIPIENT})

        assert resp.status_code == 404
        assert resp.json() == {"error": "No transform recorded for FID 42", "kind": "not_found"}
        assert ledger.records == {}

    def test_cid_mismatch_is_400(self, client, ledger):
        ledger.seed(42, "bafy123")

        resp = client.post("/mint/sign", json={"fid": 42, "cid": "bafyOTHER", "recipient": RECIPIENT})

        assert resp.status_code == 400
        assert resp.json() == {"error": "cid does not match recorded transform", "kind": "validation_error"}

    def test_bad_recipient_is_400(self, client, ledger):
        ledger.seed(42, "bafy123")

        resp = client.post("/mint/sign", json={"fid": 42, "cid": "bafy123", "recipient": "0x1234"})

        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation_error"

    def test_missing_cid_is_400(self, client):
        resp = client.post("/mint/sign", json={"fid": 42, "recipient": RECIPIENT})

        assert resp.status_code == 400

    def test_unconfigured_signer_is_500(self, ledger):
        ledger.seed(42, "bafy123")
        unconfigured = AuthorizationSigner(None, TEST_CHAIN_ID, None)
        client = _client_for(_pipeline(ledger, unconfigured))

        resp = client.post("/mint/sign", json={"fid": 42, "cid": "bafy123", "recipient": RECIPIENT})

        assert resp.status_code == 500
        assert resp.json()["error"] == "Missing required env: CONTRACT_ADDRESS"


# ---------------------------------------------------------------------------
# POST /ipfs/upload-image
# ---------------------------------------------------------------------------


class TestUploadImage:
    def test_multipart_upload(self, client, store):
        resp = client.post("/ipfs/upload-image", files={"file": ("pic.png", PNG, "image/png")})

        assert resp.status_code == 200
        assert resp.json() == {
            "cid": "bafy123",
            "gatewayUrl": "https://gateway.pinata.cloud/ipfs/bafy123",
        }
        assert store.uploads == [("pic.png", len(PNG), "image/png")]

    def test_json_upload_with_data_url_prefix(self, client, store):
        encoded = "data:image/png;base64," + base64.b64encode(PNG).decode()

        resp = client.post("/ipfs/upload-image", json={"imageBase64": encoded, "name": "b.png"})

        assert resp.status_code == 200
        assert store.uploads == [("b.png", len(PNG), "image/png")]

    def test_multipart_without_file_is_400(self, client):
        resp = client.post("/ipfs/upload-image", data={"other": "x"}, files={"note": ("n.txt", b"x", "text/plain")})

        assert resp.status_code == 400
        assert resp.json() == {
            "error": "Field 'file' is required (multipart/form-data)",
            "kind": "validation_error",
        }

    def test_json_without_image_is_400(self, client):
        resp = client.post("/ipfs/upload-image", json={"mimeType": "image/png"})

        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation_error"
        assert "imageBase64" in resp.json()["error"]

    def test_invalid_base64_is_400(self, client):
        resp = client.post("/ipfs/upload-image", json={"imageBase64": "@@not base64@@"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "imageBase64 is not valid base64", "kind": "validation_error"}

    @pytest.mark.parametrize("field, value", [("mimeType", 5), ("name", ["b.png"])])
    def test_non_string_fields_are_400(self, client, store, field, value):
        body = {"imageBase64": base64.b64encode(PNG).decode(), field: value}

        resp = client.post("/ipfs/upload-image", json=body)

        assert resp.status_code == 400
        assert resp.json() == {"error": f"'{field}' must be a string", "kind": "validation_error"}
        assert store.uploads == []

    def test_non_image_mime_is_400(self, client, store):
        body = {"imageBase64": base64.b64encode(b"{}").decode(), "mimeType": "application/json"}

        resp = client.post("/ipfs/upload-image", json=body)

        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation_error"
        assert store.uploads == []

    def test_oversized_multipart_is_413(self, client, store, monkeypatch):
        monkeypatch.setattr("routes.ipfs.MAX_BYTES", 8)

        resp = client.post("/ipfs/upload-image", files={"file": ("pic.png", PNG, "image/png")})

        assert resp.status_code == 413
        assert resp.json()["kind"] == "validation_error"
        assert store.uploads == []

    def test_unsupported_content_type_is_415(self, client):
        resp = client.post("/ipfs/upload-image", content=b"raw", headers={"Content-Type": "text/plain"})

        assert resp.status_code == 415
        assert resp.json() == {
            "error": "Unsupported Content-Type. Use multipart/form-data or application/json",
            "kind": "validation_error",
        }


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["signing_configured"] is True
        assert body["mcp_endpoint"] is None
