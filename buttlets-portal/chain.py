"""
Read-only ERC-721 access on Base.

Both the source registry (Warplets) and the mint contract (Buttlets) are
plain ERC-721 contracts; this module wraps the two view calls the portal
needs behind a small async handle so the pipeline can be tested with fakes.
"""

from __future__ import annotations

import logging

from web3 import AsyncWeb3

logger = logging.getLogger("buttlets-portal.chain")

ERC721_READ_ABI = [
    {
        "type": "function",
        "name": "tokenURI",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "type": "function",
        "name": "ownerOf",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "owner", "type": "address"}],
    },
]


class Erc721Registry:
    """Async view-call handle for one ERC-721 contract."""

    def __init__(self, rpc_url: str, contract_address: str):
        self.rpc_url = rpc_url
        self.contract_address = AsyncWeb3.to_checksum_address(contract_address)
        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(address=self.contract_address, abi=ERC721_READ_ABI)

    async def token_uri(self, token_id: int) -> str:
        return await self._contract.functions.tokenURI(token_id).call()

    async def owner_of(self, token_id: int) -> str:
        return await self._contract.functions.ownerOf(token_id).call()

    async def close(self):
        provider = self._w3.provider
        if hasattr(provider, "disconnect"):
            await provider.disconnect()
