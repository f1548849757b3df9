"""
CacheManager: process-wide state of the mempool visualizer.

Owns, per monitored node, the last mempool snapshot (refreshed incrementally
while the chain tip stays at the same height), the category buckets of that
snapshot, the per-txid dust records and the recent block windows. Created once
at startup and injected into the request handlers.

Refresh protocol for one node at height H:

- cold start (no entry, or entry at another height): one verbose
  `getrawmempool` call replaces the entry and resets its buckets.
- warm start: one non-verbose `getrawmempool` call; removed txids are evicted
  immediately, added txids are inserted by `commit` once enriched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from bitcoin_monitor.core.models import Category, DerivedTransaction, MempoolTxRecord
from bitcoin_monitor.visualizer.blocks import BlockWindowCache
from bitcoin_monitor.visualizer.categorize import classify
from bitcoin_monitor.visualizer.enrichment import Enrichment

logger = logging.getLogger("bitcoin_monitor.cache")


class MempoolSource(Protocol):
    async def get_raw_mempool(self) -> list[str]: ...

    async def get_raw_mempool_verbose(self) -> dict[str, dict]: ...


@dataclass
class NodeMempoolCacheEntry:
    """Mempool snapshot of one node as of `height`."""
    height: int
    txs: dict[str, MempoolTxRecord] = field(default_factory=dict)


@dataclass
class MempoolDelta:
    """Outcome of one refresh."""
    node_index: int
    height: int
    entry: NodeMempoolCacheEntry
    added: list[str]
    removed: list[str]
    snapshot_txids: set[str]
    cold_start: bool
    buckets: CategoryBuckets


class CategoryBuckets:
    """Partition of a node's cached txids into primary categories."""

    def __init__(self) -> None:
        self._buckets: dict[Category, dict[str, DerivedTransaction]] = {c: {} for c in Category}
        self._index: dict[str, Category] = {}

    def add(self, record: MempoolTxRecord) -> Category:
        """Classify and file a record; a txid already filed keeps its category."""
        existing = self._index.get(record.txid)
        if existing is not None:
            return existing
        tx = record.derive()
        category = classify(tx, record)
        self._buckets[category][tx.txid] = tx
        self._index[tx.txid] = category
        return category

    def discard(self, txid: str) -> None:
        category = self._index.pop(txid, None)
        if category is not None:
            del self._buckets[category][txid]

    def get(self, category: Category) -> list[DerivedTransaction]:
        """Transactions of one category, in the order they were filed."""
        return list(self._buckets[category].values())

    def category_of(self, txid: str) -> Category | None:
        return self._index.get(txid)

    def __contains__(self, txid: object) -> bool:
        return txid in self._index

    def __len__(self) -> int:
        return len(self._index)


class CacheManager:
    """
    Keyed storage for the visualizer.

        mempool: node index -> NodeMempoolCacheEntry
        buckets: (node index, height) -> CategoryBuckets
        dust:    txid -> minimum output value in satoshis
        blocks:  height -> recent BlockSummary list
    """

    def __init__(self, block_window: int = 5, block_cache_heights: int = 16) -> None:
        self.mempool: dict[int, NodeMempoolCacheEntry] = {}
        self.buckets: dict[tuple[int, int], CategoryBuckets] = {}
        self.dust: dict[str, int] = {}
        self.blocks = BlockWindowCache(window=block_window, max_heights=block_cache_heights)

    # ------------------------------------------------------------------
    # Mempool delta cache
    # ------------------------------------------------------------------

    async def refresh(self, node_index: int, height: int, node: MempoolSource) -> MempoolDelta:
        """
        Reconcile the cached snapshot of a node with its live mempool.

        Nothing is mutated if the snapshot RPC fails.
        """
        entry = self.mempool.get(node_index)
        if entry is None or entry.height != height:
            return await self._cold_start(node_index, height, node)

        current = await node.get_raw_mempool()
        if self.mempool.get(node_index) is not entry:
            # Replaced by another request while the snapshot was in flight
            logger.debug(f"Node {node_index}: cache entry replaced during refresh, retrying at {height}")
            return await self.refresh(node_index, height, node)

        current_set = set(current)
        added = [txid for txid in current if txid not in entry.txs]
        removed = [txid for txid in entry.txs if txid not in current_set]

        buckets = self.buckets_for(node_index, height)
        for txid in removed:
            del entry.txs[txid]
            buckets.discard(txid)
        self._release_dust(removed)

        logger.debug(
            f"Node {node_index} at {height}: +{len(added)} / -{len(removed)} txs, {len(current_set)} in mempool"
        )
        return MempoolDelta(
            node_index=node_index,
            height=height,
            entry=entry,
            added=added,
            removed=removed,
            snapshot_txids=current_set,
            cold_start=False,
            buckets=buckets,
        )

    async def _cold_start(self, node_index: int, height: int, node: MempoolSource) -> MempoolDelta:
        snapshot = await node.get_raw_mempool_verbose()
        previous = self.mempool.get(node_index)

        fresh = NodeMempoolCacheEntry(height=height)
        skipped = 0
        for txid, data in snapshot.items():
            try:
                fresh.txs[txid] = MempoolTxRecord.from_rpc(txid, data)
            except (KeyError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning(f"Skipping malformed mempool entry {txid}: {e}")

        self.mempool[node_index] = fresh
        for key in [k for k in self.buckets if k[0] == node_index]:
            del self.buckets[key]
        buckets = CategoryBuckets()
        self.buckets[(node_index, height)] = buckets
        if previous is not None:
            self._release_dust(txid for txid in previous.txs if txid not in fresh.txs)

        logger.info(
            f"Node {node_index} cold start at height {height}: {len(fresh.txs)} txs cached"
            + (f", {skipped} malformed skipped" if skipped else "")
        )
        return MempoolDelta(
            node_index=node_index,
            height=height,
            entry=fresh,
            added=list(fresh.txs),
            removed=[],
            snapshot_txids=set(snapshot),
            cold_start=True,
            buckets=buckets,
        )

    def commit(self, delta: MempoolDelta, enrichment: Enrichment) -> list[str]:
        """
        Insert enriched records and dust values for a refresh.

        Warm-start txids whose mempool entry could not be fetched are left out
        of the cache for this cycle. Returns the txids newly cached.
        """
        entry = delta.entry
        if delta.cold_start:
            inserted = [txid for txid in delta.added if txid in entry.txs]
        else:
            inserted = []
            for txid in delta.added:
                record = enrichment.records.get(txid)
                if record is None:
                    continue
                entry.txs[txid] = record
                inserted.append(txid)

        # A superseded entry must not leave dust records behind
        current = self.mempool.get(delta.node_index) is entry
        for txid, min_output in enrichment.min_outputs.items():
            if current and txid in entry.txs:
                self.dust[txid] = min_output
        return inserted

    # ------------------------------------------------------------------
    # Category buckets
    # ------------------------------------------------------------------

    def buckets_for(self, node_index: int, height: int) -> CategoryBuckets:
        """
        Buckets of a node at a height, created on first access.

        A bucket set created for an already populated entry files every cached
        record so that each txid belongs to exactly one bucket.
        """
        key = (node_index, height)
        buckets = self.buckets.get(key)
        if buckets is None:
            buckets = CategoryBuckets()
            self.buckets[key] = buckets
            entry = self.mempool.get(node_index)
            if entry is not None and entry.height == height:
                for record in entry.txs.values():
                    buckets.add(record)
        return buckets

    # ------------------------------------------------------------------
    # Dust records
    # ------------------------------------------------------------------

    def needs_dust_record(self, txids: Iterable[str]) -> list[str]:
        return [txid for txid in txids if txid not in self.dust]

    def _release_dust(self, txids: Iterable[str]) -> None:
        """Drop dust records of txids no node cache holds any more."""
        for txid in txids:
            if txid in self.dust and not any(txid in e.txs for e in self.mempool.values()):
                del self.dust[txid]
