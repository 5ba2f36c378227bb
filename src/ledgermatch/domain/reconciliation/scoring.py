"""Fuzzy anchor/claim scoring.

Every component is bounded by its configured weight, so a perfect pair scores
exactly the weight total (100). Only the amount component looks at more than
one field: when the anchor reports a post-gas net amount, the claim is also
compared against that and the better of the two comparisons wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ledgermatch.domain.rounding import round_half_up

if TYPE_CHECKING:
    from ledgermatch.domain.model import (
        MatchingConfig,
        ScoreBreakdown,
        Tolerances,
        Transaction,
        Weights,
    )


@dataclass(frozen=True, slots=True)
class MatchScore:
    total: float
    breakdown: ScoreBreakdown


def _linear_decay(weight: float, diff: float, threshold: float) -> float:
    if diff == 0:
        return weight
    if threshold > 0 and diff <= threshold:
        return weight * (1 - diff / threshold)
    return 0.0


def _same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def amount_score(
    anchor: Transaction,
    claim: Transaction,
    weights: Weights,
    tolerances: Tolerances,
) -> float:
    anchor_gross = float(anchor.amount_gross)
    claim_gross = float(claim.amount_gross)
    threshold = anchor_gross * tolerances.amount_percent
    score = _linear_decay(weights.amount, abs(anchor_gross - claim_gross), threshold)

    if anchor.amount_net is not None and anchor.gas_used is not None:
        net_diff = abs(float(anchor.amount_net) - claim_gross)
        score = max(score, _linear_decay(weights.amount, net_diff, threshold))
    return score


def address_score(anchor: Transaction, claim: Transaction, weights: Weights) -> float:
    score = 0.0
    if _same_address(anchor.sender_address, claim.sender_address):
        score += weights.address * 0.5
    if _same_address(anchor.receiver_address, claim.receiver_address):
        score += weights.address * 0.5
    return score


def time_score(
    anchor: Transaction,
    claim: Transaction,
    weights: Weights,
    tolerances: Tolerances,
) -> float:
    diff = abs(anchor.timestamp - claim.timestamp)
    return _linear_decay(weights.time, diff, tolerances.time_window_ms)


def token_score(anchor: Transaction, claim: Transaction, weights: Weights) -> float:
    return weights.token if anchor.token_symbol == claim.token_symbol else 0.0


def score_match(anchor: Transaction, claim: Transaction, config: MatchingConfig) -> MatchScore:
    """Score how likely ``claim`` describes the same movement as ``anchor``."""

    weights = config.weights
    tolerances = config.tolerances
    components = {
        "amount": amount_score(anchor, claim, weights, tolerances),
        "address": address_score(anchor, claim, weights),
        "time": time_score(anchor, claim, weights, tolerances),
        "token": token_score(anchor, claim, weights),
    }
    breakdown = {name: round_half_up(value) for name, value in components.items()}
    return MatchScore(total=round_half_up(sum(breakdown.values())), breakdown=breakdown)
