from bitcoin_monitor.visualizer.blocks import BlockWindowCache
from bitcoin_monitor.visualizer.cache import CacheManager, CategoryBuckets, MempoolDelta, NodeMempoolCacheEntry
from bitcoin_monitor.visualizer.categorize import classify
from bitcoin_monitor.visualizer.pipeline import MempoolVisualizer

__all__ = [
    "BlockWindowCache",
    "CacheManager",
    "CategoryBuckets",
    "MempoolDelta",
    "MempoolVisualizer",
    "NodeMempoolCacheEntry",
    "classify",
]
