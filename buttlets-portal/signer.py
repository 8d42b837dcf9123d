"""
Mint authorization signer.

The Buttlets contract only mints when given a signature from the verifier
key over this digest:

    typeHash = keccak256("WarpletAIMint(uint256 fid,address recipient,string cid,"
                         "address contractAddress,uint256 chainId,uint256 deadline)")
    digest   = keccak256(abi.encode(typeHash, fid, recipient, keccak256(cid),
                                    contractAddress, chainId, deadline))

The digest is signed with EIP-191 ``personal_sign`` over its raw 32 bytes.
Contract address and chain id always come from server configuration; the
caller can only choose fid, cid, recipient and deadline.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from errors import InvalidIdentifier, InvalidRecipient, MissingConfig

logger = logging.getLogger("buttlets-portal.signer")

MINT_TYPE = (
    "WarpletAIMint(uint256 fid,address recipient,string cid,"
    "address contractAddress,uint256 chainId,uint256 deadline)"
)
MINT_TYPE_HASH = Web3.keccak(text=MINT_TYPE)
MINT_ABI_TYPES = ["bytes32", "uint256", "address", "bytes32", "address", "uint256", "uint256"]

AUTHORIZATION_TTL_SECONDS = 30 * 60
UINT256_MAX = 2**256 - 1


def _hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


@dataclass(frozen=True)
class MintAuthorization:
    fid: int
    cid: str
    recipient: str
    contract_address: str
    chain_id: int
    deadline: int
    digest: str
    signature: str
    signer: str

    def to_response(self) -> dict:
        return {
            "signature": self.signature,
            "signer": self.signer,
            "digest": self.digest,
            "fid": str(self.fid),
            "recipient": self.recipient,
            "cid": self.cid,
            "contractAddress": self.contract_address,
            "chainId": str(self.chain_id),
            "deadline": str(self.deadline),
        }


def _uint256(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0 or value > UINT256_MAX:
        raise InvalidIdentifier(f"Invalid numeric value for {name}: {value!r}")
    return value


def checksum_recipient(recipient: Optional[str]) -> str:
    if not recipient or not isinstance(recipient, str) or not Web3.is_address(recipient):
        raise InvalidRecipient(f"Invalid recipient address: {recipient!r}")
    return Web3.to_checksum_address(recipient)


def mint_digest(
    fid: int,
    recipient: str,
    cid: str,
    contract_address: str,
    chain_id: int,
    deadline: int,
) -> bytes:
    encoded = abi_encode(
        MINT_ABI_TYPES,
        [
            MINT_TYPE_HASH,
            fid,
            recipient,
            Web3.keccak(text=cid),
            contract_address,
            chain_id,
            deadline,
        ],
    )
    return bytes(Web3.keccak(encoded))


class AuthorizationSigner:
    """Signs mint permits with the server-held verifier key."""

    def __init__(
        self,
        contract_address: Optional[str],
        chain_id: int,
        private_key: Optional[str],
        clock: Callable[[], float] = time.time,
    ):
        self.contract_address = Web3.to_checksum_address(contract_address) if contract_address else None
        self.chain_id = chain_id
        self._clock = clock
        self._account = None
        if private_key:
            key = private_key if private_key.startswith("0x") else f"0x{private_key}"
            self._account = Account.from_key(key)

    @property
    def configured(self) -> bool:
        return self.contract_address is not None and self._account is not None

    @property
    def signer_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    def sign(
        self,
        fid: int,
        cid: str,
        recipient: str,
        deadline: Optional[int] = None,
    ) -> MintAuthorization:
        if self.contract_address is None:
            raise MissingConfig("CONTRACT_ADDRESS")
        if self._account is None:
            raise MissingConfig("VERIFIER_PRIVATE_KEY")

        fid = _uint256("fid", fid)
        if not cid or not isinstance(cid, str):
            raise InvalidIdentifier("cid is required")
        recipient = checksum_recipient(recipient)
        if deadline is None:
            deadline = int(self._clock()) + AUTHORIZATION_TTL_SECONDS
        deadline = _uint256("deadline", deadline)

        digest = mint_digest(fid, recipient, cid, self.contract_address, self.chain_id, deadline)
        signed = self._account.sign_message(encode_defunct(primitive=digest))

        logger.info(
            "Signed mint permit fid=%s recipient=%s chain=%s deadline=%s",
            fid, recipient, self.chain_id, deadline,
        )
        return MintAuthorization(
            fid=fid,
            cid=cid,
            recipient=recipient,
            contract_address=self.contract_address,
            chain_id=self.chain_id,
            deadline=deadline,
            digest=_hex(digest),
            signature=_hex(signed.signature),
            signer=self._account.address,
        )
