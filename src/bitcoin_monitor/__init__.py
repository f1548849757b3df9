"""
bitcoin-monitor: monitoring dashboard backend for Bitcoin full nodes.

Usage:
    from bitcoin_monitor import BitcoinNode, MempoolVisualizer

    node = BitcoinNode("http://127.0.0.1:8332", "rpcuser", "rpcpass")
    visualizer = MempoolVisualizer([node])
    data = await visualizer.visualize(0)
"""

from bitcoin_monitor.core.config import Settings
from bitcoin_monitor.core.models import BlockSummary, DerivedTransaction, VisualizerData
from bitcoin_monitor.core.node import BitcoinNode
from bitcoin_monitor.visualizer.cache import CacheManager
from bitcoin_monitor.visualizer.pipeline import MempoolVisualizer

__version__ = "0.1.0"
__all__ = [
    "BitcoinNode",
    "BlockSummary",
    "CacheManager",
    "DerivedTransaction",
    "MempoolVisualizer",
    "Settings",
    "VisualizerData",
]
