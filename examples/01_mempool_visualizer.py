#!/usr/bin/env python3
"""
Example 01: Mempool visualizer poll.

Polls a node's mempool a few times through the incremental cache and prints
the categorized view. The first poll is a cold start (full verbose mempool),
later polls at the same height only fetch the delta.

Usage:
    python examples/01_mempool_visualizer.py http://127.0.0.1:8332 rpcuser rpcpass
"""

import asyncio
import sys
import time

from bitcoin_monitor import BitcoinNode, MempoolVisualizer

URL = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8332"
USER = sys.argv[2] if len(sys.argv) > 2 else "rpcuser"
PASSWORD = sys.argv[3] if len(sys.argv) > 3 else "rpcpass"


async def main() -> None:
    async with BitcoinNode(URL, USER, PASSWORD) as node:
        visualizer = MempoolVisualizer([node])
        for poll in range(3):
            started = time.monotonic()
            data = await visualizer.visualize(0)
            elapsed = time.monotonic() - started

            categories = data.low_priority_categories
            print("=" * 55)
            print(f"  Poll {poll + 1}: {elapsed:.2f}s")
            print("=" * 55)
            print(f"  Tip:             {data.blocks[0].height if data.blocks else 'N/A'}")
            print(f"  Mempool txs:     {data.total_tx_count}")
            print(f"  High priority:   {len(data.transactions)} shown")
            print(f"  Low fee:         {categories.low_fee.count}")
            print(f"  Dust:            {categories.dust.count}")
            print(f"  Ordinals:        {categories.ordinals.count}")
            print(f"  Anomalous:       {categories.anomalous.count}")
            for tx in data.transactions[:5]:
                print(f"    {tx.txid[:20]}... | {tx.fee_per_vbyte:8.2f} sat/vB | {tx.vsize} vB")
            await asyncio.sleep(5)


if __name__ == "__main__":
    asyncio.run(main())
