"""
BitcoinNode: async JSON-RPC 1.0 client for a Bitcoin Core (or Knots) node.

Docs: https://developer.bitcoin.org/reference/rpc/
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from bitcoin_monitor.core.models import BlockSummary, NodeCredential


class NodeRpcError(Exception):
    """Raised when the node rejects an RPC call or returns an unusable response."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


@contextmanager
def _parsing(method: str) -> Iterator[None]:
    """Report a result that does not have the documented shape as a node error."""
    try:
        yield
    except (KeyError, TypeError, ValueError) as e:
        raise NodeRpcError(f"Malformed {method} response: {e!r}") from e


@dataclass(frozen=True)
class RpcResult:
    """One slot of a batched call: either a result or the node's error object."""
    result: Any = None
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    def describe_error(self) -> str:
        if self.error:
            return f"RPC error {self.error.get('code')}: {self.error.get('message')}"
        return "no result"


class BitcoinNode:
    """
    Async client for one monitored node.

    Usage:
        node = BitcoinNode("http://127.0.0.1:8332", "rpcuser", "rpcpass")
        height = await node.get_block_count()
        results = await node.batch([("getmempoolentry", [txid]) for txid in txids])
    """

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        name: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.host = httpx.URL(self.url).host
        self.name = name or self.host
        self._client = httpx.AsyncClient(
            base_url=self.url,
            auth=(user, password),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_credential(
        cls,
        credential: NodeCredential,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BitcoinNode:
        return cls(
            credential.url,
            credential.user,
            credential.password,
            name=credential.display_name,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Blockchain
    # ------------------------------------------------------------------

    async def get_block_count(self) -> int:
        """Return the height of the most-work fully-validated chain."""
        result = await self.call("getblockcount")
        with _parsing("getblockcount"):
            return int(result)

    async def get_block_hash(self, height: int) -> str:
        result = await self.call("getblockhash", [height])
        if not isinstance(result, str):
            raise NodeRpcError(f"Malformed getblockhash response: {result!r}")
        return result

    async def get_block(self, block_hash: str) -> BlockSummary:
        """Return hash, height and timestamp of a block."""
        data = await self.call("getblock", [block_hash])
        with _parsing("getblock"):
            return BlockSummary(hash=data["hash"], height=int(data["height"]), time=int(data["time"]))

    async def get_raw_transaction(self, txid: str) -> dict[str, Any]:
        """Return the decoded transaction (works for mempool transactions without txindex)."""
        return await self.call("getrawtransaction", [txid, True])

    # ------------------------------------------------------------------
    # Mempool
    # ------------------------------------------------------------------

    async def get_raw_mempool(self) -> list[str]:
        """Return the txids currently in the mempool."""
        result = await self.call("getrawmempool", [False])
        if not isinstance(result, list):
            raise NodeRpcError(f"Malformed getrawmempool response: {type(result).__name__}")
        return result

    async def get_raw_mempool_verbose(self) -> dict[str, dict[str, Any]]:
        """Return every mempool entry keyed by txid (one large response)."""
        result = await self.call("getrawmempool", [True])
        if not isinstance(result, dict):
            raise NodeRpcError(f"Malformed getrawmempool response: {type(result).__name__}")
        return result

    async def get_mempool_entry(self, txid: str) -> dict[str, Any]:
        return await self.call("getmempoolentry", [txid])

    # ------------------------------------------------------------------
    # Network & config
    # ------------------------------------------------------------------

    async def get_network_info(self) -> dict[str, Any]:
        """Return network state, including `relayfee` in BTC/kB."""
        return await self.call("getnetworkinfo")

    async def get_index_info(self) -> dict[str, Any]:
        return await self.call("getindexinfo")

    # ------------------------------------------------------------------
    # JSON-RPC transport
    # ------------------------------------------------------------------

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """
        Make a single JSON-RPC call.

        Raises:
            NodeRpcError: if the node returns an error object or a null result.
            httpx.HTTPError: on transport failures.
        """
        response = await self._client.post(
            "/",
            json={"jsonrpc": "1.0", "id": f"bitcoin-monitor-{method}", "method": method, "params": params or []},
        )
        data = self._decode(response, method)
        if not isinstance(data, dict):
            raise NodeRpcError(f"Unexpected response to {method}: {type(data).__name__}")
        error = data.get("error")
        if error:
            raise NodeRpcError(error.get("message") or "RPC call failed", code=error.get("code"))
        if data.get("result") is None:
            raise NodeRpcError(f"RPC call {method} returned null result")
        return data["result"]

    async def batch(self, calls: list[tuple[str, list[Any]]]) -> list[RpcResult]:
        """
        Send several calls in one HTTP round trip.

        Results are returned in request order; per-call failures are reported
        in the matching `RpcResult` rather than raised.

        Raises:
            NodeRpcError: if the batch as a whole is rejected or the response
                does not hold one entry per call.
            httpx.HTTPError: on transport failures.
        """
        if not calls:
            return []
        payload = [
            {"jsonrpc": "1.0", "id": f"{method}-{index}", "method": method, "params": params}
            for index, (method, params) in enumerate(calls)
        ]
        response = await self._client.post("/", json=payload)
        data = self._decode(response, "batch")
        if isinstance(data, dict) and data.get("error"):
            raise NodeRpcError(data["error"].get("message") or "Batch call failed", code=data["error"].get("code"))
        if not isinstance(data, list) or len(data) != len(calls):
            size = len(data) if isinstance(data, list) else type(data).__name__
            raise NodeRpcError(f"Batch response size mismatch: sent {len(calls)}, got {size}")
        return [
            RpcResult(result=item.get("result"), error=item.get("error"))
            if isinstance(item, dict)
            else RpcResult(error={"code": None, "message": "malformed batch item"})
            for item in data
        ]

    @staticmethod
    def _decode(response: httpx.Response, method: str) -> Any:
        # Bitcoin Core answers RPC errors with HTTP 500/404 and a JSON body.
        if response.status_code in (401, 403):
            raise NodeRpcError(f"Node rejected credentials ({response.status_code}) for {method}")
        try:
            return response.json()
        except ValueError:
            raise NodeRpcError(
                f"API error {response.status_code} for {method}: {response.text[:200]}"
            ) from None

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> BitcoinNode:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()
