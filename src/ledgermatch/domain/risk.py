"""Heuristic per-wallet anomaly score.

The wallet's newest transaction is scored against the baseline formed by all
of its older ones. Components are fixed:

* new counterparty: +30
* amount anomaly: 0..30 from the z-score against the baseline
* new token: +20
* unusual UTC hour (01:00-05:59): +20
"""

from __future__ import annotations

import logging
import statistics
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from ledgermatch.domain.errors import NotFoundError
from ledgermatch.domain.model import RiskBreakdown, RiskSummary, WalletRiskScore
from ledgermatch.domain.rounding import round_half_up

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ledgermatch.domain.model import Transaction
    from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork

log = logging.getLogger(__name__)

NEW_COUNTERPARTY_POINTS: Final[float] = 30
AMOUNT_ANOMALY_CAP: Final[float] = 30
NEW_TOKEN_POINTS: Final[float] = 20
TIME_ANOMALY_POINTS: Final[float] = 20
UNUSUAL_HOURS: Final[range] = range(1, 6)
MAX_SCORE: Final[float] = 100


def score_history(
    wallet: str,
    transactions: Sequence[Transaction],
) -> tuple[float, RiskBreakdown, RiskSummary]:
    """Score ``transactions`` (oldest first) for ``wallet``.

    Returns ``(score, breakdown, summary)``; with no baseline the score is 0.
    """

    breakdown = RiskBreakdown()
    if not transactions:
        return 0.0, breakdown, RiskSummary()

    subject = transactions[-1]
    history = transactions[:-1]
    amounts = [float(tx.amount_gross) for tx in history]
    mean = statistics.fmean(amounts) if amounts else 0.0
    std_dev = statistics.stdev(amounts) if len(amounts) > 1 else 0.0

    counterparties = {_lower(tx.counterparty_of(wallet)) for tx in transactions} - {None}
    tokens = {tx.token_symbol for tx in transactions}
    summary = RiskSummary(
        mean_amount=round_half_up(mean),
        std_dev=round_half_up(std_dev),
        total_txs=len(transactions),
        unique_counterparties=len(counterparties),
        unique_tokens=len(tokens),
    )
    if not history:
        return 0.0, breakdown, summary

    known_counterparties = {_lower(tx.counterparty_of(wallet)) for tx in history} - {None}
    counterparty = _lower(subject.counterparty_of(wallet))
    if counterparty is not None and counterparty not in known_counterparties:
        breakdown.new_counterparty = NEW_COUNTERPARTY_POINTS

    if std_dev > 0:
        z = abs(float(subject.amount_gross) - mean) / std_dev
        breakdown.amount_anomaly = round_half_up(min(AMOUNT_ANOMALY_CAP, z / 3 * 30))

    if subject.token_symbol not in {tx.token_symbol for tx in history}:
        breakdown.new_token = NEW_TOKEN_POINTS

    hour = datetime.fromtimestamp(subject.timestamp / 1000, tz=UTC).hour
    if hour in UNUSUAL_HOURS:
        breakdown.time_anomaly = TIME_ANOMALY_POINTS

    score = min(round_half_up(breakdown.total, 0), MAX_SCORE)
    return score, breakdown, summary


def _lower(address: str | None) -> str | None:
    return address.lower() if address else None


class RiskScoringService:
    def __init__(self, *, unit_of_work_factory: Callable[[], ReconciliationUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def calculate(self, wallet: str) -> WalletRiskScore:
        wallet = wallet.lower()
        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            transactions = repositories.transactions.history_for_wallet(wallet)
            score, breakdown, summary = score_history(wallet, transactions)
            stored = repositories.risk_scores.upsert(
                WalletRiskScore(
                    wallet_address=wallet,
                    risk_score=score,
                    risk_breakdown=breakdown.as_dict(),
                    summary=summary.as_dict(),
                )
            )
            uow.commit()
        log.debug(f"Risk score for {wallet}: {score}")
        return stored

    def recalculate_all(self) -> list[WalletRiskScore]:
        """Rescore every wallet seen in the ledger; per-wallet failures are skipped."""

        with self._unit_of_work_factory() as uow:
            wallets = list(uow.repositories.transactions.wallets())

        results: list[WalletRiskScore] = []
        for wallet in wallets:
            try:
                results.append(self.calculate(wallet))
            except Exception:  # noqa: BLE001 - one wallet must not abort the batch
                log.exception(f"Risk calculation failed for {wallet}")
        log.info(f"Risk recalculation finished: {len(results)}/{len(wallets)} wallets scored")
        return results

    def get_by_wallet(self, wallet: str) -> WalletRiskScore:
        with self._unit_of_work_factory() as uow:
            score = uow.repositories.risk_scores.get(wallet)
        if score is None:
            raise NotFoundError("Wallet risk score", wallet)
        return score

    def get_all(self) -> list[WalletRiskScore]:
        with self._unit_of_work_factory() as uow:
            return list(uow.repositories.risk_scores.get_all())
