"""
Block window cache: the most recent blocks below a chain tip, fetched once per height.
"""

from __future__ import annotations

import logging
from typing import Protocol

from bitcoin_monitor.core.models import BlockSummary
from bitcoin_monitor.core.tasks import raise_first_error, settle_all

logger = logging.getLogger("bitcoin_monitor.blocks")


class BlockSource(Protocol):
    async def get_block_hash(self, height: int) -> str: ...

    async def get_block(self, block_hash: str) -> BlockSummary: ...


class BlockWindowCache:
    """
    Recent block summaries keyed by tip height.

    Usage:
        blocks = BlockWindowCache(window=5)
        summaries = await blocks.get_recent_blocks(height, node)
    """

    def __init__(self, window: int = 5, max_heights: int = 16) -> None:
        self.window = window
        self.max_heights = max_heights
        self._windows: dict[int, list[BlockSummary]] = {}

    async def get_recent_blocks(self, height: int, node: BlockSource) -> list[BlockSummary]:
        """
        Return summaries for heights height, height-1, ... (at most `window`, all > 0).

        Raises:
            the first RPC error if any block of the window cannot be fetched.
        """
        cached = self._windows.get(height)
        if cached is not None:
            return cached

        heights = [h for h in range(height, height - self.window, -1) if h > 0]
        outcomes = await settle_all(*(self._fetch(node, h) for h in heights))
        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.error(f"Failed to fetch {failed}/{len(heights)} blocks below height {height}")
            raise_first_error(outcomes)

        blocks = [o.unwrap() for o in outcomes]
        self._windows[height] = blocks
        self._prune()
        return blocks

    def __contains__(self, height: object) -> bool:
        return height in self._windows

    def __len__(self) -> int:
        return len(self._windows)

    @staticmethod
    async def _fetch(node: BlockSource, height: int) -> BlockSummary:
        block_hash = await node.get_block_hash(height)
        return await node.get_block(block_hash)

    def _prune(self) -> None:
        # Keep the newest heights only
        while len(self._windows) > self.max_heights:
            del self._windows[min(self._windows)]
