"""
Shared fixtures: an in-memory stand-in for a Bitcoin node.
"""

from typing import Any

import pytest

from bitcoin_monitor.core.models import BlockSummary
from bitcoin_monitor.core.node import NodeRpcError, RpcResult


def mempool_entry(
    fee_btc: float,
    vsize: int,
    time: int = 1_700_000_000,
    depends: list[str] | None = None,
    replaceable: bool = False,
) -> dict[str, Any]:
    """Raw `getmempoolentry` object as Bitcoin Core returns it."""
    return {
        "vsize": vsize,
        "weight": vsize * 4,
        "fees": {"base": fee_btc},
        "time": time,
        "depends": depends or [],
        "bip125-replaceable": replaceable,
    }


class FakeNode:
    """
    Mimics the BitcoinNode methods used by the visualizer.

    `mempool` maps txid -> raw entry; `outputs` maps txid -> output values in BTC.
    Every RPC method name is appended to `calls`; batches are recorded in `batches`.
    """

    def __init__(self, height: int = 800_000, relay_fee: float = 0.00001) -> None:
        self.name = "fake"
        self.host = "127.0.0.1"
        self.height = height
        self.relay_fee = relay_fee
        self.mempool: dict[str, dict[str, Any]] = {}
        self.outputs: dict[str, list[float]] = {}
        self.failing_entries: set[str] = set()
        self.failing_outputs: set[str] = set()
        self.failing_methods: set[str] = set()
        self.calls: list[str] = []
        self.batches: list[list[tuple[str, list[Any]]]] = []

    def add(self, txid: str, entry: dict[str, Any], outputs: list[float] | None = None) -> None:
        self.mempool[txid] = entry
        self.outputs[txid] = outputs if outputs is not None else [0.001]

    def remove(self, txid: str) -> None:
        self.mempool.pop(txid, None)

    def _record(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failing_methods:
            raise NodeRpcError(f"{method} failed", code=-1)

    async def get_block_count(self) -> int:
        self._record("getblockcount")
        return self.height

    async def get_network_info(self) -> dict[str, Any]:
        self._record("getnetworkinfo")
        return {"relayfee": self.relay_fee, "version": 270000}

    async def get_raw_mempool(self) -> list[str]:
        self._record("getrawmempool")
        return list(self.mempool)

    async def get_raw_mempool_verbose(self) -> dict[str, dict[str, Any]]:
        self._record("getrawmempool_verbose")
        return dict(self.mempool)

    async def get_index_info(self) -> dict[str, Any]:
        self._record("getindexinfo")
        return {"txindex": {"synced": True, "best_block_height": self.height}}

    async def get_block_hash(self, height: int) -> str:
        self._record("getblockhash")
        return f"hash-{height}"

    async def get_block(self, block_hash: str) -> BlockSummary:
        self._record("getblock")
        height = int(block_hash.split("-")[1])
        return BlockSummary(hash=block_hash, height=height, time=1_600_000_000 + height * 600)

    async def batch(self, calls: list[tuple[str, list[Any]]]) -> list[RpcResult]:
        self._record("batch")
        self.batches.append(calls)
        results = []
        for method, params in calls:
            txid = params[0]
            if method == "getmempoolentry":
                if txid in self.failing_entries or txid not in self.mempool:
                    results.append(RpcResult(error={"code": -5, "message": "Transaction not in mempool"}))
                else:
                    results.append(RpcResult(result=self.mempool[txid]))
            elif method == "getrawtransaction":
                if txid in self.failing_outputs or txid not in self.outputs:
                    results.append(RpcResult(error={"code": -5, "message": "No such mempool transaction"}))
                else:
                    vout = [{"value": v, "n": n} for n, v in enumerate(self.outputs[txid])]
                    results.append(RpcResult(result={"txid": txid, "vout": vout}))
            else:
                results.append(RpcResult(error={"code": -32601, "message": "Method not found"}))
        return results


@pytest.fixture
def node():
    return FakeNode()
