from pydantic import BaseModel, ConfigDict, Field

from bitcoin_monitor.core.models import MAX_NODES, VisualizerData, WireModel


class VisualizerRequest(BaseModel):
    """Request model for one visualizer poll."""
    model_config = ConfigDict(populate_by_name=True)

    node_index: int = Field(
        ...,
        alias="nodeIndex",
        ge=0,
        le=MAX_NODES,
        strict=True,
        description="Index of the monitored node in the configured credentials list",
    )


class VisualizerResponse(WireModel):
    """Envelope returned by the visualizer endpoint."""

    success: bool = Field(..., description="False when the poll failed")
    data: VisualizerData | None = Field(None, description="Visualizer payload on success")
    error: str | None = Field(None, description="Error message on failure")


class NodeStatus(WireModel):
    """Reachability of one configured node."""

    index: int = Field(..., description="Node index to pass to the visualizer")
    host: str = Field(..., description="Host of the node's RPC endpoint")
    name: str = Field(..., description="Display name, defaults to the host")
    is_tx_index: bool = Field(False, description="Whether the node runs with txindex")
    is_error: bool = Field(False, description="Whether the node could not be reached")


class NodeList(WireModel):
    node_count: int
    nodes: list[NodeStatus] = Field(default_factory=list)


class NodeListResponse(WireModel):
    """Envelope returned by the node list endpoint."""

    success: bool
    data: NodeList | None = None
    error: str | None = None
