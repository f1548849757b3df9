import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from bitcoin_monitor.api.models import (
    NodeList,
    NodeListResponse,
    NodeStatus,
    VisualizerRequest,
    VisualizerResponse,
)
from bitcoin_monitor.core.tasks import settle_all
from bitcoin_monitor.visualizer.pipeline import MempoolVisualizer

logger = logging.getLogger("bitcoin_monitor.api")

router = APIRouter(tags=["Visualizer"])

# getindexinfo is quick; a node slower than this is reported as unreachable
NODE_PROBE_TIMEOUT = 2.0


def get_visualizer(request: Request) -> MempoolVisualizer:
    """Dependency to retrieve the initialized MempoolVisualizer from app state."""
    visualizer = getattr(request.app.state, "visualizer", None)
    if not visualizer:
        raise HTTPException(status_code=500, detail="visualizer not initialized")
    return visualizer


@router.post("/visualizer", response_model=VisualizerResponse, response_model_exclude_none=True)
async def visualize(request: Request, req: VisualizerRequest):
    """
    Categorized view of a node's mempool.

    Returns the high-priority transactions sorted by fee rate, summaries of the
    low-fee, dust, ordinals and anomalous categories, and the most recent blocks.
    """
    visualizer = get_visualizer(request)
    data = await visualizer.visualize(req.node_index)
    return VisualizerResponse(success=True, data=data)


@router.get("/nodes", response_model=NodeListResponse, response_model_exclude_none=True)
async def list_nodes(request: Request):
    """
    List configured nodes with their reachability.

    A node that does not answer `getindexinfo` in time is flagged `isError`;
    it never fails the request. Nodes older than v0.21 lack `getindexinfo`
    and are flagged `isError` as well, although they are reachable.
    """
    visualizer = get_visualizer(request)
    nodes = visualizer.nodes
    outcomes = await settle_all(
        *(asyncio.wait_for(node.get_index_info(), NODE_PROBE_TIMEOUT) for node in nodes)
    )

    statuses = []
    for index, (node, outcome) in enumerate(zip(nodes, outcomes)):
        if not outcome.ok:
            logger.warning(f"Node {index} ({node.name}) probe failed: {outcome.error!r}")
        txindex = (outcome.value or {}).get("txindex") or {}
        statuses.append(
            NodeStatus(
                index=index,
                host=node.host,
                name=node.name,
                is_tx_index="best_block_height" in txindex,
                is_error=not outcome.ok,
            )
        )
    return NodeListResponse(success=True, data=NodeList(node_count=len(nodes), nodes=statuses))
