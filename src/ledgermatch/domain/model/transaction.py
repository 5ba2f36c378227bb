"""Token-movement records: on-chain anchors and off-chain claims."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ledgermatch.domain.model.entity import Entity, utcnow
from ledgermatch.domain.model.enums import (
    CLAIM_SOURCES,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal
    from uuid import UUID


type ScoreBreakdown = dict[str, float]


@dataclass(eq=False, kw_only=True)
class Transaction(Entity):
    """A single token movement, either an anchor or a claim.

    Anchors (``source = onchain``) are authoritative and stay in status
    ``anchor`` forever; claims start ``pending`` and move through the
    transitions declared in ``lifecycle``.
    """

    tx_hash: str
    source: TransactionSource
    type: TransactionType
    token_symbol: str
    amount_gross: Decimal
    timestamp: int  # epoch milliseconds
    status: TransactionStatus | None = None

    token_address: str | None = None
    amount_net: Decimal | None = None
    gas_used: Decimal | None = None
    sender_address: str | None = None
    receiver_address: str | None = None
    block_number: int | None = None

    matched_tx_id: UUID | None = None
    match_score: float | None = None
    score_breakdown: ScoreBreakdown | None = None
    reconciled_by: str | None = None
    reconciled_at: datetime | None = None
    force_reconciled: bool = False

    notes: str | None = None
    meta: dict[str, Any] | None = field(default=None, repr=False)

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.status is None:
            self.status = (
                TransactionStatus.ANCHOR if self.is_anchor else TransactionStatus.PENDING
            )

    @property
    def is_anchor(self) -> bool:
        return self.source is TransactionSource.ONCHAIN

    @property
    def is_claim(self) -> bool:
        return self.source in CLAIM_SOURCES

    def counterparty_of(self, wallet: str) -> str | None:
        """Return the address on the other side of ``wallet``, if it participates."""

        needle = wallet.lower()
        if self.sender_address is not None and self.sender_address.lower() == needle:
            return self.receiver_address
        if self.receiver_address is not None and self.receiver_address.lower() == needle:
            return self.sender_address
        return None

    def snapshot(self) -> dict[str, Any]:
        """Small state snapshot used for audit before/after records."""

        return {
            "status": str(self.status),
            "matched_tx_id": str(self.matched_tx_id) if self.matched_tx_id else None,
            "match_score": self.match_score,
        }
