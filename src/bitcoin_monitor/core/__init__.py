"""core module init"""
from bitcoin_monitor.core.config import ConfigError, Settings, parse_node_credentials
from bitcoin_monitor.core.models import (
    MAX_NODES,
    MAX_VIZ_TX,
    SATS_PER_BTC,
    BlockSummary,
    Category,
    CategorySummary,
    DerivedTransaction,
    LowPriorityCategories,
    MempoolTxRecord,
    NodeCredential,
    VisualizerData,
    btc_to_sats,
)
from bitcoin_monitor.core.node import BitcoinNode, NodeRpcError, RpcResult
from bitcoin_monitor.core.tasks import Settled, settle_all

__all__ = [
    "MAX_NODES",
    "MAX_VIZ_TX",
    "SATS_PER_BTC",
    "BitcoinNode",
    "BlockSummary",
    "Category",
    "CategorySummary",
    "ConfigError",
    "DerivedTransaction",
    "LowPriorityCategories",
    "MempoolTxRecord",
    "NodeCredential",
    "NodeRpcError",
    "RpcResult",
    "Settings",
    "Settled",
    "VisualizerData",
    "btc_to_sats",
    "parse_node_credentials",
    "settle_all",
]
