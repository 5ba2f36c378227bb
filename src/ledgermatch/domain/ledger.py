"""Intake of claims and anchors, and summary statistics over the ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Annotated, Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ledgermatch.domain.audit import AuditTrail
from ledgermatch.domain.errors import InvalidInputError, NotFoundError, ReconciliationError
from ledgermatch.domain.model import (
    CLAIM_SOURCES,
    RECONCILED_STATUSES,
    AuditAction,
    AuditEntityType,
    SuggestionStatus,
    Transaction,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)
from ledgermatch.domain.rounding import round_half_up

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from uuid import UUID

    from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork

log = logging.getLogger(__name__)

MAX_IMPORT_SIZE: Final[int] = 500

Address = Annotated[str, Field(max_length=42)]
Amount = Annotated[Decimal, Field(ge=0)]


class _RecordInput(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    tx_hash: str = Field(min_length=1, max_length=66)
    type: TransactionType
    token_symbol: str = Field(min_length=1, max_length=20)
    token_address: Address | None = None
    amount_gross: Amount
    gas_used: Amount | None = None
    sender_address: Address | None = None
    receiver_address: Address | None = None
    timestamp: int = Field(gt=0)
    block_number: int | None = None

    def _common(self) -> dict[str, Any]:
        return self.model_dump(exclude={"source", "amount_net", "notes", "metadata"})


class ClaimInput(_RecordInput):
    """An off-chain claim as submitted by an application, import or operator."""

    source: TransactionSource = TransactionSource.MANUAL
    amount_net: Amount | None = None
    notes: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("source")
    @classmethod
    def _claim_source(cls, value: TransactionSource) -> TransactionSource:
        if value not in CLAIM_SOURCES:
            raise ValueError(f"claims cannot have source '{value}'")
        return value

    def to_transaction(self) -> Transaction:
        return Transaction(
            **self._common(),
            source=self.source,
            amount_net=self.amount_net,
            notes=self.notes,
            meta=self.metadata,
        )


class AnchorInput(_RecordInput):
    """A normalized on-chain transfer event."""

    def to_transaction(self) -> Transaction:
        return Transaction(**self._common(), source=TransactionSource.ONCHAIN)


@dataclass(slots=True, frozen=True)
class ImportFailure:
    index: int
    error: str


@dataclass(slots=True)
class ImportResult:
    imported: list[Transaction] = field(default_factory=list)
    failed: list[ImportFailure] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class LedgerStats:
    total_anchors: int
    total_claims: int
    pending_claims: int
    reconciled: int
    open_suggestions: int
    match_rate: int


def parse_claim(payload: ClaimInput | Mapping[str, Any]) -> ClaimInput:
    if isinstance(payload, ClaimInput):
        return payload
    try:
        return ClaimInput.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid claim: {_first_error(exc)}") from exc


def parse_anchor(payload: AnchorInput | Mapping[str, Any]) -> AnchorInput:
    if isinstance(payload, AnchorInput):
        return payload
    try:
        return AnchorInput.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid anchor: {_first_error(exc)}") from exc


def _first_error(exc: ValidationError) -> str:
    error = exc.errors(include_url=False)[0]
    location = ".".join(str(item) for item in error["loc"])
    return f"{location}: {error['msg']}" if location else str(error["msg"])


class LedgerService:
    def __init__(self, *, unit_of_work_factory: Callable[[], ReconciliationUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def create_claim(
        self,
        claim: ClaimInput | Mapping[str, Any],
        actor: str = "system",
    ) -> Transaction:
        transaction = parse_claim(claim).to_transaction()
        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            repositories.transactions.add(transaction)
            AuditTrail(repositories.audit_log).log(
                AuditAction.CREATE_CLAIM,
                AuditEntityType.TRANSACTION,
                transaction.id,
                actor,
                new_state={
                    "status": TransactionStatus.PENDING,
                    "source": transaction.source,
                    "token": transaction.token_symbol,
                },
            )
            uow.commit()
        return transaction

    def import_claims(
        self,
        claims: Sequence[ClaimInput | Mapping[str, Any]],
        actor: str = "system",
    ) -> ImportResult:
        """Create each claim independently; failures are reported by position."""

        if not 1 <= len(claims) <= MAX_IMPORT_SIZE:
            raise InvalidInputError(
                f"Import must contain between 1 and {MAX_IMPORT_SIZE} claims, got {len(claims)}"
            )

        result = ImportResult()
        for index, claim in enumerate(claims):
            try:
                result.imported.append(self.create_claim(claim, actor))
            except ReconciliationError as exc:
                result.failed.append(ImportFailure(index, str(exc)))
            except Exception as exc:  # noqa: BLE001 - report and continue with the next row
                log.exception(f"Unexpected error importing claim #{index}")
                result.failed.append(ImportFailure(index, str(exc)))
        log.info(
            f"Imported {len(result.imported)} claims, {len(result.failed)} failed, by {actor}"
        )
        return result

    def record_anchor(self, anchor: AnchorInput | Mapping[str, Any]) -> Transaction:
        """Store an on-chain event; replaying the same event returns the stored row."""

        transaction = parse_anchor(anchor).to_transaction()
        with self._unit_of_work_factory() as uow:
            stored = uow.repositories.transactions.upsert_anchor(transaction)
            uow.commit()
            return stored

    def get_transaction(self, tx_id: UUID) -> Transaction:
        with self._unit_of_work_factory() as uow:
            transaction = uow.repositories.transactions.get(tx_id)
        if transaction is None:
            raise NotFoundError("Transaction", tx_id)
        return transaction

    def ledger_stats(self) -> LedgerStats:
        with self._unit_of_work_factory() as uow:
            transactions = uow.repositories.transactions
            total_claims = transactions.count(sources=CLAIM_SOURCES)
            reconciled = transactions.count(statuses=RECONCILED_STATUSES)
            match_rate = round_half_up(reconciled / total_claims * 100, 0) if total_claims else 0
            stats = LedgerStats(
                total_anchors=transactions.count(
                    statuses=frozenset({TransactionStatus.ANCHOR})
                ),
                total_claims=total_claims,
                pending_claims=transactions.count(
                    statuses=frozenset({TransactionStatus.PENDING})
                ),
                reconciled=reconciled,
                open_suggestions=uow.repositories.suggestions.count(SuggestionStatus.PENDING),
                match_rate=int(match_rate),
            )
        return stats
