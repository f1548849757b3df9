"""
Detail fetch for newly observed mempool transactions.

All lookups of one refresh go out as a single JSON-RPC batch:

    [getmempoolentry(t1), ..., getmempoolentry(tn), getrawtransaction(u1, true), ...]

Results are matched back to txids by position. A failed slot is logged and
only affects its own txid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from bitcoin_monitor.core.models import MempoolTxRecord, btc_to_sats
from bitcoin_monitor.core.node import NodeRpcError, RpcResult

logger = logging.getLogger("bitcoin_monitor.enrichment")


class BatchSource(Protocol):
    async def batch(self, calls: list[tuple[str, list[Any]]]) -> list[RpcResult]: ...


@dataclass
class Enrichment:
    """Records and minimum output values fetched in one batch."""
    records: dict[str, MempoolTxRecord] = field(default_factory=dict)
    min_outputs: dict[str, int] = field(default_factory=dict)
    failures: int = 0


def min_output_sats(raw_tx: dict[str, Any]) -> int:
    """Smallest output value of a decoded transaction, in satoshis."""
    return min(btc_to_sats(vout["value"]) for vout in raw_tx["vout"])


async def enrich(
    node: BatchSource,
    entry_txids: list[str],
    output_txids: list[str],
) -> Enrichment:
    """
    Fetch mempool entries and output values in one round trip.

    Args:
        node: client exposing `batch`
        entry_txids: txids that need a full mempool entry
        output_txids: txids that need their minimum output value

    Returns:
        Enrichment holding every successfully parsed item.
    """
    enrichment = Enrichment()
    calls: list[tuple[str, list[Any]]] = [("getmempoolentry", [txid]) for txid in entry_txids]
    calls += [("getrawtransaction", [txid, True]) for txid in output_txids]
    if not calls:
        return enrichment

    try:
        results = await node.batch(calls)
    except (NodeRpcError, httpx.HTTPError) as e:
        logger.warning(f"Enrichment batch of {len(calls)} calls failed: {e}")
        enrichment.failures = len(calls)
        return enrichment

    entry_results = results[: len(entry_txids)]
    output_results = results[len(entry_txids):]

    for txid, result in zip(entry_txids, entry_results):
        if not result.ok:
            enrichment.failures += 1
            logger.warning(f"Failed to fetch mempool entry for {txid}: {result.describe_error()}")
            continue
        try:
            enrichment.records[txid] = MempoolTxRecord.from_rpc(txid, result.result)
        except (KeyError, TypeError, ValueError) as e:
            enrichment.failures += 1
            logger.warning(f"Invalid mempool entry for {txid}: {e}")

    for txid, result in zip(output_txids, output_results):
        if not result.ok:
            enrichment.failures += 1
            logger.warning(f"Failed to fetch outputs for {txid}: {result.describe_error()}")
            continue
        try:
            enrichment.min_outputs[txid] = min_output_sats(result.result)
        except (KeyError, TypeError, ValueError) as e:
            enrichment.failures += 1
            logger.warning(f"Invalid transaction outputs for {txid}: {e}")

    if enrichment.failures:
        logger.info(f"Enrichment finished with {enrichment.failures}/{len(calls)} failed lookups")
    return enrichment
