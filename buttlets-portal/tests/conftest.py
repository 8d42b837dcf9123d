# FILE: tests/conftest.py
"""
Pytest configuration for the Buttlets Portal test suite.

Puts the service directory on sys.path (modules are flat, like in
production) and provides a pipeline wired entirely to in-memory fakes.
"""

import sys
from pathlib import Path

_service_root = Path(__file__).parent.parent
if str(_service_root) not in sys.path:
    sys.path.insert(0, str(_service_root))

import pytest

from fakes import (
    FIXED_NOW,
    TEST_CHAIN_ID,
    TEST_CONTRACT,
    TEST_PRIVATE_KEY,
    FakeFetcher,
    FakeLedger,
    FakeRegistry,
    FakeResolver,
    FakeStore,
    FakeTransformer,
)
from mint_status import MintStatusChecker
from pipeline import TransformPipeline
from signer import AuthorizationSigner


@pytest.fixture
def signer():
    return AuthorizationSigner(
        TEST_CONTRACT,
        TEST_CHAIN_ID,
        TEST_PRIVATE_KEY,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def store():
    return FakeStore(cid="bafy123")


@pytest.fixture
def transformer():
    return FakeTransformer()


@pytest.fixture
def owner_registry():
    return FakeRegistry()


@pytest.fixture
def pipeline(ledger, store, transformer, signer, owner_registry):
    return TransformPipeline(
        ledger=ledger,
        resolver=FakeResolver(),
        fetcher=FakeFetcher(),
        transformer=transformer,
        store=store,
        signer=signer,
        mint_checker=MintStatusChecker(owner_registry),
    )
