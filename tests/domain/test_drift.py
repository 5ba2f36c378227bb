from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from ledgermatch.adapters.sqlalchemy import SqlAlchemyWalletBalanceRepository
from ledgermatch.domain.audit import AuditQuery, query_audit_log
from ledgermatch.domain.config_store import update_matching_config
from ledgermatch.domain.drift import DriftService, alert_level_for, drift_percentage
from ledgermatch.domain.model import (
    AlertLevel,
    AuditAction,
    DriftThresholds,
    TransactionStatus,
    WalletBalanceDrift,
)
from tests.helpers.ledger import ALICE, BOB, FakeBalanceReader, make_claim, seed

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgermatch.adapters.sqlalchemy import SqlAlchemyUnitOfWork


@pytest.mark.parametrize(
    ("percentage", "expected"),
    [
        (0.0, AlertLevel.NONE),
        (0.99, AlertLevel.NONE),
        (1.0, AlertLevel.WARNING),
        (-4.99, AlertLevel.WARNING),
        (5.0, AlertLevel.CRITICAL),
        (-30.0, AlertLevel.CRITICAL),
    ],
)
def test_alert_level_for(percentage: float, expected: AlertLevel) -> None:
    assert alert_level_for(percentage, DriftThresholds()) is expected


def test_drift_percentage_without_onchain_balance_is_zero() -> None:
    assert drift_percentage(Decimal(-70), Decimal(0)) == 0
    assert drift_percentage(Decimal(30), Decimal(100)) == 30


def _reconciled_inflow(
    factory: Callable[[], SqlAlchemyUnitOfWork],
    amount: str = "70",
) -> None:
    seed(
        factory,
        make_claim(amount, sender=ALICE, receiver=BOB, status=TransactionStatus.RECONCILED),
        # pending claims never count toward the internal balance
        make_claim("500", sender=ALICE, receiver=BOB),
    )


def test_compute_drift_raises_critical_alert(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    reader = FakeBalanceReader({(BOB, "DAI"): Decimal(100)})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)

    row = service.compute_drift(BOB.upper().replace("0X", "0x"), "DAI")

    assert row.wallet_address == BOB
    assert row.internal_balance == Decimal(70)
    assert row.onchain_balance == Decimal(100)
    assert row.drift == Decimal(30)
    assert row.drift_percentage == 30
    assert row.alert_level is AlertLevel.CRITICAL

    audit = query_audit_log(
        AuditQuery(action=AuditAction.DRIFT_ALERT), unit_of_work_factory=sqlite_unit_of_work
    )
    assert audit.total == 1
    assert audit.entries[0].actor == "system"
    assert audit.entries[0].new_state is not None
    assert audit.entries[0].new_state["alert_level"] == "critical"


def test_sender_side_counts_negative(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    reader = FakeBalanceReader({(ALICE, "DAI"): Decimal(-70)})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)

    row = service.compute_drift(ALICE, "DAI")

    assert row.internal_balance == Decimal(-70)
    assert row.drift == Decimal(0)
    assert row.alert_level is AlertLevel.NONE


def test_zero_onchain_balance_never_alerts(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    service = DriftService(
        unit_of_work_factory=sqlite_unit_of_work, balance_reader=FakeBalanceReader()
    )

    row = service.compute_drift(BOB, "DAI")

    assert row.drift == Decimal(-70)
    assert row.drift_percentage == 0
    assert row.alert_level is AlertLevel.NONE
    audit = query_audit_log(
        AuditQuery(action=AuditAction.DRIFT_ALERT), unit_of_work_factory=sqlite_unit_of_work
    )
    assert audit.total == 0


def test_failed_balance_read_degrades_to_zero(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    reader = FakeBalanceReader({(BOB, "DAI"): Decimal(100)}, failing={(BOB, "DAI")})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)

    row = service.compute_drift(BOB, "DAI")

    assert row.onchain_balance == Decimal(0)
    assert reader.calls == [(BOB, "DAI")]


def test_recompute_replaces_stored_row(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    reader = FakeBalanceReader({(BOB, "DAI"): Decimal(100)})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)
    service.compute_drift(BOB, "DAI")

    reader.balances[(BOB, "DAI")] = Decimal(70)
    service.compute_drift(BOB, "DAI")

    rows = service.get_by_wallet(BOB)
    assert len(rows) == 1
    assert rows[0].drift == Decimal(0)
    assert rows[0].alert_level is AlertLevel.NONE


def test_sync_all_continues_after_a_failing_pair(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    original_upsert = SqlAlchemyWalletBalanceRepository.upsert

    def upsert(
        self: SqlAlchemyWalletBalanceRepository,
        drift: WalletBalanceDrift,
    ) -> WalletBalanceDrift:
        if drift.wallet_address == ALICE:
            raise RuntimeError("disk full")
        return original_upsert(self, drift)

    monkeypatch.setattr(SqlAlchemyWalletBalanceRepository, "upsert", upsert)
    reader = FakeBalanceReader({(BOB, "DAI"): Decimal(70)})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)

    results = service.sync_all()

    assert [(row.wallet_address, row.token_symbol) for row in results] == [(BOB, "DAI")]
    assert sorted(reader.calls) == [(ALICE, "DAI"), (BOB, "DAI")]


def test_reports_are_relevelled_with_current_thresholds(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work)
    reader = FakeBalanceReader({(BOB, "DAI"): Decimal(100)})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)
    service.compute_drift(BOB, "DAI")

    update_matching_config(
        unit_of_work_factory=sqlite_unit_of_work,
        actor="ops",
        drift_thresholds={"alert_percent": 10, "critical_percent": 50},
    )

    [row] = service.get_all()
    assert row.alert_level is AlertLevel.WARNING


def test_drained_wallet_still_stores_critical_drift(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _reconciled_inflow(sqlite_unit_of_work, amount="1000000")
    # one wei of DAI left on chain
    reader = FakeBalanceReader({(BOB, "DAI"): Decimal("0.000000000000000001")})
    service = DriftService(unit_of_work_factory=sqlite_unit_of_work, balance_reader=reader)

    row = service.compute_drift(BOB, "DAI")

    assert row.alert_level is AlertLevel.CRITICAL
    assert row.drift_percentage == pytest.approx(-1e26, rel=1e-9)
    [stored] = service.get_by_wallet(BOB)
    assert stored.alert_level is AlertLevel.CRITICAL
    audit = query_audit_log(
        AuditQuery(action=AuditAction.DRIFT_ALERT), unit_of_work_factory=sqlite_unit_of_work
    )
    assert audit.total == 1
