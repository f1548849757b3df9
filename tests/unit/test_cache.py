"""
Unit tests for the mempool delta cache and category buckets.
"""

import asyncio

import pytest

from bitcoin_monitor.core.models import Category, MempoolTxRecord
from bitcoin_monitor.core.node import NodeRpcError
from bitcoin_monitor.visualizer.cache import CacheManager, CategoryBuckets
from bitcoin_monitor.visualizer.enrichment import Enrichment, enrich
from conftest import FakeNode, mempool_entry


def _seed(node, *txids, fee=0.0001, vsize=200):
    for txid in txids:
        node.add(txid, mempool_entry(fee, vsize))


def _refresh_and_commit(cache, node, node_index=0):
    """One refresh cycle as the pipeline runs it."""

    async def run():
        delta = await cache.refresh(node_index, node.height, node)
        enrichment = await enrich(
            node,
            entry_txids=[] if delta.cold_start else delta.added,
            output_txids=cache.needs_dust_record(delta.added),
        )
        inserted = cache.commit(delta, enrichment)
        for txid in inserted:
            delta.buckets.add(delta.entry.txs[txid])
        return delta, inserted

    return asyncio.run(run())


class TestColdStart:

    def test_cache_equals_snapshot(self, node):
        _seed(node, "a", "b", "c")
        cache = CacheManager()
        delta, inserted = _refresh_and_commit(cache, node)

        assert delta.cold_start
        assert set(cache.mempool[0].txs) == {"a", "b", "c"}
        assert delta.added == ["a", "b", "c"]
        assert delta.removed == []
        assert inserted == ["a", "b", "c"]
        assert cache.mempool[0].height == node.height

    def test_uses_single_verbose_call_and_no_entry_lookups(self, node):
        _seed(node, "a", "b")
        cache = CacheManager()
        _refresh_and_commit(cache, node)

        assert node.calls.count("getrawmempool_verbose") == 1
        assert "getrawmempool" not in node.calls
        assert [m for m, _ in node.batches[0]] == ["getrawtransaction", "getrawtransaction"]

    def test_malformed_snapshot_entry_is_skipped(self, node):
        _seed(node, "a")
        node.mempool["bad"] = {"vsize": 100}
        cache = CacheManager()
        delta, _ = _refresh_and_commit(cache, node)

        assert set(cache.mempool[0].txs) == {"a"}
        assert delta.snapshot_txids == {"a", "bad"}

    def test_height_change_rebuilds_and_resets_buckets(self, node):
        _seed(node, "a", "b")
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        old_height = node.height

        node.height += 1
        node.remove("a")
        _seed(node, "c")
        delta, _ = _refresh_and_commit(cache, node)

        assert delta.cold_start
        assert set(cache.mempool[0].txs) == {"b", "c"}
        assert (0, old_height) not in cache.buckets
        assert len(cache.buckets[(0, node.height)]) == 2
        # dust record of the evicted txid is gone, the survivor's is reused
        assert "a" not in cache.dust
        assert "b" in cache.dust
        assert node.batches[-1] == [("getrawtransaction", ["c", True])]

    def test_snapshot_failure_leaves_cache_untouched(self, node):
        _seed(node, "a")
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        before = dict(cache.mempool[0].txs)

        node.height += 1
        node.failing_methods.add("getrawmempool_verbose")
        with pytest.raises(NodeRpcError):
            asyncio.run(cache.refresh(0, node.height, node))

        assert cache.mempool[0].txs == before
        assert cache.mempool[0].height == node.height - 1


class TestWarmStart:

    def test_delta_is_applied(self, node):
        _seed(node, "a", "b", "c")
        cache = CacheManager()
        _refresh_and_commit(cache, node)

        node.remove("a")
        _seed(node, "d", "e")
        old = set(cache.mempool[0].txs)
        delta, inserted = _refresh_and_commit(cache, node)

        assert not delta.cold_start
        assert delta.added == ["d", "e"]
        assert delta.removed == ["a"]
        assert set(cache.mempool[0].txs) == (old - {"a"}) | {"d", "e"}
        assert set(cache.mempool[0].txs) == delta.snapshot_txids
        assert inserted == ["d", "e"]

    def test_only_new_txids_are_enriched(self, node):
        _seed(node, "a", "b")
        cache = CacheManager()
        _refresh_and_commit(cache, node)

        _seed(node, "c")
        _refresh_and_commit(cache, node)

        assert node.calls.count("getrawmempool") == 1
        assert node.batches[-1] == [
            ("getmempoolentry", ["c"]),
            ("getrawtransaction", ["c", True]),
        ]

    def test_no_change_sends_no_batch(self, node):
        _seed(node, "a")
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        batches = len(node.batches)

        delta, inserted = _refresh_and_commit(cache, node)
        assert delta.added == [] and delta.removed == []
        assert inserted == []
        assert len(node.batches) == batches

    def test_failed_entry_is_left_out_then_retried(self, node):
        _seed(node, "a")
        cache = CacheManager()
        _refresh_and_commit(cache, node)

        _seed(node, "b")
        node.failing_entries.add("b")
        _, inserted = _refresh_and_commit(cache, node)
        assert inserted == []
        assert "b" not in cache.mempool[0].txs
        assert "b" not in cache.dust

        node.failing_entries.clear()
        delta, inserted = _refresh_and_commit(cache, node)
        assert delta.added == ["b"]
        assert inserted == ["b"]

    def test_removed_txids_leave_buckets_and_dust(self, node):
        _seed(node, "a", "b")
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        assert "a" in cache.dust

        node.remove("a")
        _refresh_and_commit(cache, node)
        buckets = cache.buckets[(0, node.height)]
        assert "a" not in buckets
        assert "a" not in cache.dust

    def test_dust_kept_while_another_node_holds_txid(self):
        first, second = FakeNode(), FakeNode()
        for n in (first, second):
            _seed(n, "shared")
        cache = CacheManager()
        _refresh_and_commit(cache, first, node_index=0)
        _refresh_and_commit(cache, second, node_index=1)
        # second node reused the dust record fetched through the first
        assert second.batches == []

        first.remove("shared")
        _refresh_and_commit(cache, first, node_index=0)
        assert "shared" in cache.dust

    def test_snapshot_failure_leaves_cache_untouched(self, node):
        _seed(node, "a", "b")
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        txs = dict(cache.mempool[0].txs)
        filed = {txid: cache.buckets[(0, node.height)].category_of(txid) for txid in txs}
        dust = dict(cache.dust)

        node.remove("a")
        _seed(node, "c")
        node.failing_methods.add("getrawmempool")
        with pytest.raises(NodeRpcError):
            asyncio.run(cache.refresh(0, node.height, node))

        assert cache.mempool[0].txs == txs
        assert {t: cache.buckets[(0, node.height)].category_of(t) for t in txs} == filed
        assert len(cache.buckets[(0, node.height)]) == len(txs)
        assert cache.dust == dust
        assert node.calls.count("getrawmempool_verbose") == 1


class TestPartition:

    def test_every_cached_txid_in_exactly_one_bucket(self, node):
        node.add("low", mempool_entry(0.000001, 200))
        node.add("big", mempool_entry(0.01, 20_000))
        node.add("rbf", mempool_entry(0.0001, 200, replaceable=True))
        node.add("hp", mempool_entry(0.0001, 200))
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        node.add("hp2", mempool_entry(0.0002, 200))
        node.remove("big")
        _refresh_and_commit(cache, node)

        buckets = cache.buckets[(0, node.height)]
        filed = [tx.txid for c in Category for tx in buckets.get(c)]
        assert sorted(filed) == sorted(cache.mempool[0].txs)
        assert len(filed) == len(set(filed))
        assert buckets.category_of("low") == Category.LOW_FEE
        assert buckets.category_of("rbf") == Category.ANOMALOUS
        assert buckets.category_of("hp2") == Category.HIGH_PRIORITY

    def test_missing_buckets_are_rebuilt_from_cache(self, node):
        _seed(node, "a", "b")
        cache = CacheManager()
        _refresh_and_commit(cache, node)
        del cache.buckets[(0, node.height)]

        buckets = cache.buckets_for(0, node.height)
        assert len(buckets) == 2


def test_bucket_add_is_idempotent():
    record = MempoolTxRecord.from_rpc("a", mempool_entry(0.0001, 200))
    buckets = CategoryBuckets()
    assert buckets.add(record) == Category.HIGH_PRIORITY
    buckets.add(record)
    assert len(buckets.get(Category.HIGH_PRIORITY)) == 1
    buckets.discard("a")
    buckets.discard("a")
    assert len(buckets) == 0


def test_commit_cold_start_ignores_enrichment_records(node):
    _seed(node, "a")
    cache = CacheManager()
    delta = asyncio.run(cache.refresh(0, node.height, node))
    stray = MempoolTxRecord.from_rpc("zz", mempool_entry(0.0001, 200))
    inserted = cache.commit(delta, Enrichment(records={"zz": stray}, min_outputs={"a": 10, "zz": 5}))
    assert inserted == ["a"]
    assert cache.dust == {"a": 10}
