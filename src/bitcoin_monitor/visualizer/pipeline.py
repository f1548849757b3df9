"""
MempoolVisualizer: the per-request visualization pipeline.

    height + relay fee  (concurrent)
      -> mempool refresh          (CacheManager.refresh)
      -> batched enrichment       (enrich)
      -> cache insert + classify  (CacheManager.commit, CategoryBuckets)
      -> dust re-evaluation       (find_dust)
      -> sort / truncate / summarize
      -> recent blocks            (BlockWindowCache)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from bitcoin_monitor.core.config import Settings
from bitcoin_monitor.core.models import (
    MAX_VIZ_TX,
    Category,
    CategorySummary,
    DerivedTransaction,
    LowPriorityCategories,
    VisualizerData,
)
from bitcoin_monitor.core.node import BitcoinNode, NodeRpcError
from bitcoin_monitor.core.tasks import raise_first_error, settle_all
from bitcoin_monitor.visualizer.cache import CacheManager
from bitcoin_monitor.visualizer.dust import dust_threshold, find_dust
from bitcoin_monitor.visualizer.enrichment import enrich

logger = logging.getLogger("bitcoin_monitor.visualizer")


def sort_high_priority(txs: list[DerivedTransaction], limit: int = MAX_VIZ_TX) -> list[DerivedTransaction]:
    """Order by fee rate, then arrival time, both descending, and keep the first `limit`."""
    return sorted(txs, key=lambda tx: (tx.fee_per_vbyte, tx.time), reverse=True)[:limit]


def summarize(txs: list[DerivedTransaction]) -> CategorySummary:
    if not txs:
        return CategorySummary()
    return CategorySummary(
        count=len(txs),
        total_vsize=sum(tx.vsize for tx in txs),
        avg_fee_per_vbyte=sum(tx.fee_per_vbyte for tx in txs) / len(txs),
        example_txid=txs[0].txid,
    )


class MempoolVisualizer:
    """
    Builds the visualizer payload for a monitored node.

    Usage:
        visualizer = MempoolVisualizer(nodes, CacheManager(), settings)
        data = await visualizer.visualize(0)
    """

    def __init__(
        self,
        nodes: Sequence[BitcoinNode],
        cache: CacheManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._nodes = list(nodes)
        self._cache = cache or CacheManager(
            block_window=self._settings.block_window,
            block_cache_heights=self._settings.block_cache_heights,
        )

    @property
    def cache(self) -> CacheManager:
        return self._cache

    @property
    def nodes(self) -> list[BitcoinNode]:
        return self._nodes

    def node(self, node_index: int) -> BitcoinNode:
        if not 0 <= node_index < len(self._nodes):
            raise ValueError(f"Invalid node index: {node_index}")
        return self._nodes[node_index]

    async def visualize(self, node_index: int) -> VisualizerData:
        """
        Run one poll of the pipeline.

        Raises:
            ValueError: unknown node index
            NodeRpcError, httpx.HTTPError: height, network info, mempool
                snapshot or block window could not be fetched
        """
        node = self.node(node_index)

        outcomes = await settle_all(node.get_block_count(), node.get_network_info())
        raise_first_error(outcomes)
        height, network_info = outcomes[0].unwrap(), outcomes[1].unwrap()
        try:
            threshold = dust_threshold(network_info)
        except (KeyError, TypeError, ValueError) as e:
            raise NodeRpcError(f"getnetworkinfo response lacks a usable relayfee: {e}") from e

        delta = await self._cache.refresh(node_index, height, node)
        enrichment = await enrich(
            node,
            entry_txids=[] if delta.cold_start else delta.added,
            output_txids=self._cache.needs_dust_record(delta.added),
        )
        inserted = self._cache.commit(delta, enrichment)

        buckets = delta.buckets
        entry = delta.entry
        for txid in inserted:
            buckets.add(entry.txs[txid])

        if enrichment.failures:
            logger.warning(
                f"Node {node_index}: {enrichment.failures} enrichment lookups failed, "
                f"{len(delta.added) - len(inserted)} new txs deferred"
            )

        dust = find_dust(entry.txs, self._cache.dust, threshold)
        views = {category: buckets.get(category) for category in Category}
        if self._settings.dust_exclusive and dust:
            dust_ids = {tx.txid for tx in dust}
            views = {c: [tx for tx in txs if tx.txid not in dust_ids] for c, txs in views.items()}

        blocks = await self._cache.blocks.get_recent_blocks(height, node)

        return VisualizerData(
            transactions=sort_high_priority(views[Category.HIGH_PRIORITY], self._settings.max_viz_tx),
            blocks=blocks,
            total_tx_count=len(delta.snapshot_txids),
            low_priority_categories=LowPriorityCategories(
                low_fee=summarize(views[Category.LOW_FEE]),
                dust=summarize(dust),
                ordinals=summarize(views[Category.ORDINALS]),
                anomalous=summarize(views[Category.ANOMALOUS]),
            ),
        )
