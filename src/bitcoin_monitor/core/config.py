"""
Runtime configuration.

Everything is read from the environment once, in the API lifespan:

    BITCOIN_NODE_CREDENTIALS        JSON list of {user, password, host, port, name?, protocol?}
    BITCOIN_NODE_CREDENTIALS_FILE   path to a JSON file holding the same list
    RPC_TIMEOUT                     seconds per RPC round trip (default 30)
    VISUALIZER_MAX_TX               max high-priority transactions returned (default 3000)
    BLOCK_WINDOW_SIZE               recent blocks returned per poll (default 5)
    BLOCK_CACHE_HEIGHTS             heights kept in the block window cache (default 16)
    DUST_EXCLUSIVE                  hide dust transactions from their primary bucket (default false)
    LOG_LEVEL                       level of the "bitcoin_monitor" logger (default INFO)
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter, ValidationError

from bitcoin_monitor.core.models import MAX_NODES, MAX_VIZ_TX, NodeCredential

logger = logging.getLogger("bitcoin_monitor.config")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_credentials_adapter = TypeAdapter(list[NodeCredential])


class ConfigError(Exception):
    """Raised when the environment holds an unusable configuration."""
    pass


def parse_node_credentials(raw: str | list[dict[str, Any]]) -> list[NodeCredential]:
    """
    Parse and validate a list of node credentials.

    Args:
        raw: JSON text or an already decoded list

    Raises:
        ConfigError: on invalid JSON, missing fields, or too many nodes
    """
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        nodes = _credentials_adapter.validate_python(data)
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid node credentials: {e}") from e
    if len(nodes) > MAX_NODES + 1:
        raise ConfigError(f"At most {MAX_NODES + 1} nodes can be monitored, got {len(nodes)}.")
    return nodes


@dataclass
class Settings:
    """
    Service configuration.

    Args:
        nodes:               monitored nodes; list position is the node index
        rpc_timeout:         httpx timeout for each RPC round trip, in seconds
        max_viz_tx:          truncation limit of the high-priority list
        block_window:        number of recent blocks in each response
        block_cache_heights: heights retained by the block window cache
        dust_exclusive:      drop dust transactions from their primary bucket view
        log_level:           level applied to the "bitcoin_monitor" logger
    """
    nodes: list[NodeCredential] = field(default_factory=list)
    rpc_timeout: float = 30.0
    max_viz_tx: int = MAX_VIZ_TX
    block_window: int = 5
    block_cache_heights: int = 16
    dust_exclusive: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        nodes: list[NodeCredential] = []
        if env.get("BITCOIN_NODE_CREDENTIALS"):
            nodes = parse_node_credentials(env["BITCOIN_NODE_CREDENTIALS"])
        elif env.get("BITCOIN_NODE_CREDENTIALS_FILE"):
            path = env["BITCOIN_NODE_CREDENTIALS_FILE"]
            try:
                with open(path) as f:
                    nodes = parse_node_credentials(f.read())
            except OSError as e:
                raise ConfigError(f"Cannot read node credentials from {path}: {e}") from e
        else:
            logger.warning("No node credentials configured; every visualizer request will be rejected.")

        try:
            return cls(
                nodes=nodes,
                rpc_timeout=float(env.get("RPC_TIMEOUT", 30.0)),
                max_viz_tx=int(env.get("VISUALIZER_MAX_TX", MAX_VIZ_TX)),
                block_window=int(env.get("BLOCK_WINDOW_SIZE", 5)),
                block_cache_heights=int(env.get("BLOCK_CACHE_HEIGHTS", 16)),
                dust_exclusive=env.get("DUST_EXCLUSIVE", "").strip().lower() in _TRUE_VALUES,
                log_level=env.get("LOG_LEVEL", "INFO").upper(),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e
