"""Wallet-level summaries derived from the transaction table."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from ledgermatch.domain.model.entity import utcnow
from ledgermatch.domain.model.enums import AlertLevel

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal


@dataclass(eq=False, kw_only=True)
class WalletBalanceDrift:
    """Internal vs. authoritative balance for one (wallet, token)."""

    wallet_address: str
    token_symbol: str
    internal_balance: Decimal
    onchain_balance: Decimal
    drift: Decimal
    drift_percentage: float
    alert_level: AlertLevel = AlertLevel.NONE
    last_updated: datetime = field(default_factory=utcnow)


@dataclass(slots=True, kw_only=True)
class RiskBreakdown:
    new_counterparty: float = 0
    amount_anomaly: float = 0
    new_token: float = 0
    time_anomaly: float = 0

    @property
    def total(self) -> float:
        return self.new_counterparty + self.amount_anomaly + self.new_token + self.time_anomaly

    def as_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> RiskBreakdown:
        payload = payload or {}
        return cls(
            new_counterparty=float(payload.get("new_counterparty", 0)),
            amount_anomaly=float(payload.get("amount_anomaly", 0)),
            new_token=float(payload.get("new_token", 0)),
            time_anomaly=float(payload.get("time_anomaly", 0)),
        )


@dataclass(slots=True, kw_only=True)
class RiskSummary:
    mean_amount: float = 0
    std_dev: float = 0
    total_txs: int = 0
    unique_counterparties: int = 0
    unique_tokens: int = 0

    def as_dict(self) -> dict[str, float | int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> RiskSummary:
        payload = payload or {}
        return cls(
            mean_amount=float(payload.get("mean_amount", 0)),
            std_dev=float(payload.get("std_dev", 0)),
            total_txs=int(payload.get("total_txs", 0)),
            unique_counterparties=int(payload.get("unique_counterparties", 0)),
            unique_tokens=int(payload.get("unique_tokens", 0)),
        )


@dataclass(eq=False, kw_only=True)
class WalletRiskScore:
    """Heuristic anomaly score (0-100) for a wallet's most recent transaction."""

    wallet_address: str
    risk_score: float
    risk_breakdown: dict[str, float]
    summary: dict[str, float | int]
    last_calculated: datetime = field(default_factory=utcnow)

    @property
    def breakdown(self) -> RiskBreakdown:
        return RiskBreakdown.from_dict(self.risk_breakdown)

    @property
    def stats(self) -> RiskSummary:
        return RiskSummary.from_dict(self.summary)
