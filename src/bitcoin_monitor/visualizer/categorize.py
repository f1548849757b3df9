"""
Primary categorization of mempool transactions.

Rules are evaluated in order and the first match wins:

1. fee rate below LOW_FEE_RATE sat/vB          -> lowFee
2. vsize above ORDINALS_MIN_VSIZE vbytes       -> ordinals (large inscription-style payloads)
3. more than MAX_DEPENDS parents, or BIP125    -> anomalous
4. anything else                               -> highPriority
"""

from __future__ import annotations

from bitcoin_monitor.core.models import Category, DerivedTransaction, MempoolTxRecord

LOW_FEE_RATE = 2
ORDINALS_MIN_VSIZE = 10_000
MAX_DEPENDS = 3


def classify(tx: DerivedTransaction, record: MempoolTxRecord) -> Category:
    """Return the primary category of a transaction. Pure and total."""
    if tx.fee_per_vbyte < LOW_FEE_RATE:
        return Category.LOW_FEE
    if record.vsize > ORDINALS_MIN_VSIZE:
        return Category.ORDINALS
    if len(record.depends) > MAX_DEPENDS or record.replaceable:
        return Category.ANOMALOUS
    return Category.HIGH_PRIORITY
