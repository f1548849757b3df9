"""
Dust classification, independent of the primary category.

A transaction is flagged as dust when its smallest output is worth less than
half the node's relay fee per kB.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from bitcoin_monitor.core.models import DerivedTransaction, MempoolTxRecord, btc_to_sats

DUST_RELAY_FACTOR = 0.5


def dust_threshold(network_info: Mapping[str, Any]) -> float:
    """Threshold in satoshis from a `getnetworkinfo` response (`relayfee` is BTC/kB)."""
    return DUST_RELAY_FACTOR * btc_to_sats(network_info["relayfee"])


def find_dust(
    txs: Mapping[str, MempoolTxRecord],
    min_outputs: Mapping[str, int],
    threshold: float,
) -> list[DerivedTransaction]:
    """Cached transactions with a known output below the threshold, in cache order."""
    return [
        record.derive()
        for txid, record in txs.items()
        if txid in min_outputs and min_outputs[txid] < threshold
    ]
