"""
API module for bitcoin-monitor.

Provides FastAPI routes and models exposing the mempool visualizer over HTTP.
"""

from bitcoin_monitor.api.models import (
    NodeList,
    NodeListResponse,
    NodeStatus,
    VisualizerRequest,
    VisualizerResponse,
)

__all__ = [
    "NodeList",
    "NodeListResponse",
    "NodeStatus",
    "VisualizerRequest",
    "VisualizerResponse",
]
