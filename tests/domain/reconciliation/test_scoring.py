from __future__ import annotations

from decimal import Decimal

import pytest

from ledgermatch.domain.model import MatchingConfig, Tolerances, Weights
from ledgermatch.domain.reconciliation import score_match
from tests.helpers.ledger import ALICE, BASE_TS, BOB, CAROL, HOUR_MS, make_anchor, make_claim


def test_identical_pair_scores_full_weight() -> None:
    result = score_match(make_anchor("100"), make_claim("100"), MatchingConfig())

    assert result.total == 100
    assert result.breakdown == {"amount": 40, "address": 30, "time": 20, "token": 10}


def test_amount_decays_linearly_within_tolerance() -> None:
    result = score_match(make_anchor("100"), make_claim("100.5"), MatchingConfig())

    assert result.breakdown["amount"] == 20
    assert result.total == 80


def test_amount_outside_tolerance_scores_zero() -> None:
    result = score_match(make_anchor("100"), make_claim("102"), MatchingConfig())

    assert result.breakdown["amount"] == 0


def test_net_amount_is_compared_when_gas_is_reported() -> None:
    anchor = make_anchor("100", amount_net=Decimal("99"), gas_used=Decimal("1"))

    result = score_match(anchor, make_claim("99"), MatchingConfig())

    assert result.breakdown["amount"] == 40


def test_net_amount_is_ignored_without_gas() -> None:
    anchor = make_anchor("100", amount_net=Decimal("99"))

    result = score_match(anchor, make_claim("99"), MatchingConfig())

    assert result.breakdown["amount"] == 0


def test_addresses_compare_case_insensitively() -> None:
    claim = make_claim("100", sender=ALICE.upper().replace("0X", "0x"), receiver=CAROL)

    result = score_match(make_anchor("100", sender=ALICE, receiver=BOB), claim, MatchingConfig())

    assert result.breakdown["address"] == 15


def test_missing_addresses_never_match() -> None:
    result = score_match(
        make_anchor("100", sender=None, receiver=None),
        make_claim("100", sender=None, receiver=None),
        MatchingConfig(),
    )

    assert result.breakdown["address"] == 0


@pytest.mark.parametrize(
    ("offset_ms", "expected"),
    [
        (0, 20),
        (HOUR_MS // 2, 10),
        (HOUR_MS, 0),
        (2 * HOUR_MS, 0),
    ],
)
def test_time_component_decays_over_window(offset_ms: int, expected: float) -> None:
    claim = make_claim("100", timestamp=BASE_TS + offset_ms)

    result = score_match(make_anchor("100"), claim, MatchingConfig())

    assert result.breakdown["time"] == expected


def test_token_mismatch_scores_zero_token_points() -> None:
    result = score_match(make_anchor("100"), make_claim("100", token="USDC"), MatchingConfig())

    assert result.breakdown["token"] == 0
    assert result.total == 90


def test_custom_weights_and_tolerances_are_honoured() -> None:
    config = MatchingConfig(
        weights=Weights(amount=70, address=10, time=10, token=10),
        tolerances=Tolerances(amount_percent=0.1, time_window_ms=HOUR_MS),
    )

    result = score_match(make_anchor("100"), make_claim("105"), config)

    assert result.breakdown["amount"] == 35
    assert result.total == 65


SKEWED = MatchingConfig(
    weights=Weights(amount=37, address=29, time=23, token=11),
    tolerances=Tolerances(amount_percent=0.01, time_window_ms=HOUR_MS),
)
AMOUNT_OFFSETS = ["0", "0.013", "0.1", "0.333", "0.5", "0.777", "0.99", "1", "1.01", "2", "50"]


@pytest.mark.parametrize("amount_offset", AMOUNT_OFFSETS)
@pytest.mark.parametrize("time_offset_ms", [0, 1, 777_777, 1_234_567, HOUR_MS - 1, HOUR_MS])
@pytest.mark.parametrize("receiver", [BOB, CAROL])
def test_breakdown_sums_to_total(amount_offset: str, time_offset_ms: int, receiver: str) -> None:
    claim = make_claim(
        Decimal(100) + Decimal(amount_offset),
        receiver=receiver,
        timestamp=BASE_TS + time_offset_ms,
    )

    result = score_match(make_anchor("100"), claim, SKEWED)

    assert abs(sum(result.breakdown.values()) - result.total) <= 0.01
    assert 0 <= result.total <= 100


@pytest.mark.parametrize("sign", [1, -1])
def test_amount_score_never_grows_with_difference(sign: int) -> None:
    anchor = make_anchor("100")
    scores = [
        score_match(
            anchor, make_claim(Decimal(100) + sign * Decimal(offset)), SKEWED
        ).breakdown["amount"]
        for offset in AMOUNT_OFFSETS
    ]

    assert scores[0] == 37
    assert all(later <= earlier for earlier, later in zip(scores, scores[1:], strict=False))
    # threshold is 1% of the anchor amount
    threshold_index = AMOUNT_OFFSETS.index("1")
    assert scores[threshold_index:] == [0] * (len(AMOUNT_OFFSETS) - threshold_index)
