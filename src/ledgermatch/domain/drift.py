"""Balance drift between the internal ledger and an authoritative balance source."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Final

from ledgermatch.domain.audit import AuditTrail
from ledgermatch.domain.config_store import load_matching_config
from ledgermatch.domain.model import (
    RECONCILED_STATUSES,
    AlertLevel,
    AuditAction,
    AuditEntityType,
    WalletBalanceDrift,
)
from ledgermatch.domain.rounding import round_half_up

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ledgermatch.domain.model import DriftThresholds
    from ledgermatch.domain.ports.balances import BalanceReader
    from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork

log = logging.getLogger(__name__)

SYSTEM_ACTOR: Final[str] = "system"
_ZERO = Decimal(0)


def alert_level_for(percentage: float, thresholds: DriftThresholds) -> AlertLevel:
    magnitude = abs(percentage)
    if magnitude >= thresholds.critical_percent:
        return AlertLevel.CRITICAL
    if magnitude >= thresholds.alert_percent:
        return AlertLevel.WARNING
    return AlertLevel.NONE


def drift_percentage(drift: Decimal, onchain: Decimal) -> float:
    """``drift / onchain * 100``, or 0 when there is no on-chain balance."""

    if onchain == _ZERO:
        return 0.0
    return float(drift / onchain * 100)


class DriftService:
    """Recomputes and reports per-(wallet, token) balance drift.

    The internal balance is the signed sum of reconciled transactions; the
    external one comes from a :class:`BalanceReader`. A failing read degrades
    to a zero balance for that cycle instead of aborting.
    """

    def __init__(
        self,
        *,
        unit_of_work_factory: Callable[[], ReconciliationUnitOfWork],
        balance_reader: BalanceReader,
    ) -> None:
        self._unit_of_work_factory = unit_of_work_factory
        self._balance_reader = balance_reader

    def compute_drift(self, wallet: str, token: str) -> WalletBalanceDrift:
        wallet = wallet.lower()
        onchain = self._read_external(wallet, token)

        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            thresholds = load_matching_config(repositories.config).drift_thresholds
            internal = repositories.transactions.signed_balance(
                wallet, token, RECONCILED_STATUSES
            )
            drift = onchain - internal
            raw_percentage = drift_percentage(drift, onchain)
            level = alert_level_for(raw_percentage, thresholds)
            percentage = round_half_up(raw_percentage)

            stored = repositories.balances.upsert(
                WalletBalanceDrift(
                    wallet_address=wallet,
                    token_symbol=token,
                    internal_balance=internal,
                    onchain_balance=onchain,
                    drift=drift,
                    drift_percentage=percentage,
                    alert_level=level,
                )
            )
            if level is not AlertLevel.NONE:
                AuditTrail(repositories.audit_log).log(
                    AuditAction.DRIFT_ALERT,
                    AuditEntityType.WALLET_BALANCE,
                    None,
                    SYSTEM_ACTOR,
                    new_state={
                        "wallet": wallet,
                        "token": token,
                        "drift": drift,
                        "drift_pct": percentage,
                        "alert_level": level,
                    },
                )
                log.warning(
                    f"Drift {level} for {wallet}/{token}: drift={drift} ({percentage}%)"
                )
            uow.commit()
            return stored

    def sync_all(self) -> list[WalletBalanceDrift]:
        """Recompute every (wallet, token) pair seen in the ledger; failures are skipped."""

        with self._unit_of_work_factory() as uow:
            pairs = list(uow.repositories.transactions.wallet_token_pairs())

        results: list[WalletBalanceDrift] = []
        for wallet, token in pairs:
            try:
                results.append(self.compute_drift(wallet, token))
            except Exception:  # noqa: BLE001 - one pair must not abort the sync
                log.exception(f"Drift computation failed for {wallet}/{token}")
        log.info(f"Drift sync finished: {len(results)}/{len(pairs)} pairs updated")
        return results

    def get_all(self) -> list[WalletBalanceDrift]:
        return stored_drift(unit_of_work_factory=self._unit_of_work_factory)

    def get_by_wallet(self, wallet: str) -> list[WalletBalanceDrift]:
        return stored_drift(unit_of_work_factory=self._unit_of_work_factory, wallet=wallet)

    def _read_external(self, wallet: str, token: str) -> Decimal:
        try:
            return Decimal(self._balance_reader.read_balance(wallet, token))
        except Exception as exc:  # noqa: BLE001 - degrade to zero for this cycle
            log.error(f"Failed to read balance for {wallet}/{token}, using 0: {exc}")
            return _ZERO


def stored_drift(
    *,
    unit_of_work_factory: Callable[[], ReconciliationUnitOfWork],
    wallet: str | None = None,
) -> list[WalletBalanceDrift]:
    """Stored rows re-levelled with the current thresholds.

    Without ``wallet`` every row is returned, largest absolute drift first.
    """

    with unit_of_work_factory() as uow:
        thresholds = load_matching_config(uow.repositories.config).drift_thresholds
        balances = uow.repositories.balances
        rows = balances.get_all() if wallet is None else balances.get_by_wallet(wallet)
        return _relevel(rows, thresholds)


def _relevel(
    rows: Sequence[WalletBalanceDrift],
    thresholds: DriftThresholds,
) -> list[WalletBalanceDrift]:
    for row in rows:
        row.alert_level = alert_level_for(row.drift_percentage, thresholds)
    return list(rows)
