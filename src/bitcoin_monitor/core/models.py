"""
Core data models for the mempool visualizer.
All amounts are in satoshis (1 BTC = 100,000,000 sat) internally, except
`MempoolTxRecord.fee_base` which keeps the node's BTC value as reported.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SATS_PER_BTC = 100_000_000

# The max index accepted for a monitored node.
MAX_NODES = 32
# The max number of transactions sent to the browser.
MAX_VIZ_TX = 3000


def btc_to_sats(value: float) -> int:
    """Convert a BTC amount as returned by the node to whole satoshis."""
    return round(value * SATS_PER_BTC)


class WireModel(BaseModel):
    """Base for models serialized to the dashboard (camelCase keys)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Category(str, Enum):
    """Primary bucket of a mempool transaction."""
    HIGH_PRIORITY = "highPriority"
    LOW_FEE = "lowFee"
    ORDINALS = "ordinals"
    ANOMALOUS = "anomalous"


class NodeCredential(BaseModel):
    """Connection details for one monitored node."""
    user: str
    password: str
    host: str
    port: int = 8332
    name: str | None = None
    protocol: str = "http"

    @property
    def display_name(self) -> str:
        return self.name or self.host

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


class MempoolTxRecord(BaseModel):
    """A mempool entry as reported by `getrawmempool true` or `getmempoolentry`."""
    model_config = ConfigDict(frozen=True)

    txid: str
    vsize: int = Field(gt=0)
    weight: int
    fee_base: float  # BTC
    time: int
    depends: tuple[str, ...] = ()
    replaceable: bool = False

    @classmethod
    def from_rpc(cls, txid: str, data: dict[str, Any]) -> MempoolTxRecord:
        """
        Parse a raw mempool entry object.

        Raises:
            KeyError, TypeError or ValueError if the entry is malformed.
        """
        vsize = data["vsize"]
        return cls(
            txid=txid,
            vsize=vsize,
            weight=data.get("weight", vsize * 4),
            fee_base=data["fees"]["base"],
            time=data["time"],
            depends=tuple(data.get("depends", ())),
            replaceable=bool(data.get("bip125-replaceable", False)),
        )

    def derive(self) -> DerivedTransaction:
        return DerivedTransaction.from_record(self)


class DerivedTransaction(WireModel):
    """Fee-rate view of a mempool entry, as shown by the visualizer."""
    model_config = ConfigDict(frozen=True)

    txid: str
    fee_satoshis: int
    vsize: int
    fee_per_vbyte: float
    time: int

    @classmethod
    def from_record(cls, record: MempoolTxRecord) -> DerivedTransaction:
        fee = btc_to_sats(record.fee_base)
        return cls(
            txid=record.txid,
            fee_satoshis=fee,
            vsize=record.vsize,
            fee_per_vbyte=fee / record.vsize,
            time=record.time,
        )


class BlockSummary(WireModel):
    """A recently mined block."""
    model_config = ConfigDict(frozen=True)

    hash: str
    height: int
    time: int


class CategorySummary(WireModel):
    """Aggregate of a low-priority category."""
    count: int = 0
    total_vsize: int = 0
    avg_fee_per_vbyte: float = 0.0
    example_txid: str | None = None


class LowPriorityCategories(WireModel):
    low_fee: CategorySummary
    dust: CategorySummary
    ordinals: CategorySummary
    anomalous: CategorySummary


class VisualizerData(WireModel):
    """Payload of one visualizer poll."""
    transactions: list[DerivedTransaction] = Field(default_factory=list)
    blocks: list[BlockSummary] = Field(default_factory=list)
    total_tx_count: int = 0
    low_priority_categories: LowPriorityCategories
