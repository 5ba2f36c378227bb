from __future__ import annotations

import pytest
from pydantic import ValidationError

from ledgermatch.domain.model import (
    ConfigKey,
    DriftThresholds,
    MatchingConfig,
    Tolerances,
    Weights,
)


def test_defaults() -> None:
    config = MatchingConfig()

    assert config.weights == Weights(amount=40, address=30, time=20, token=10)
    assert config.tolerances.amount_percent == 0.01
    assert config.tolerances.time_window_ms == 3_600_000
    assert config.tolerances.block_window == 100
    assert config.drift_thresholds == DriftThresholds(alert_percent=1.0, critical_percent=5.0)


def test_weights_must_sum_to_one_hundred() -> None:
    with pytest.raises(ValidationError, match="sum to 100"):
        Weights(amount=50, address=30, time=20, token=10)


@pytest.mark.parametrize("amount_percent", [-0.01, 1.5])
def test_amount_tolerance_is_a_fraction(amount_percent: float) -> None:
    with pytest.raises(ValidationError):
        Tolerances(amount_percent=amount_percent)


def test_alert_threshold_cannot_exceed_critical() -> None:
    with pytest.raises(ValidationError, match="must not exceed"):
        DriftThresholds(alert_percent=10, critical_percent=5)

    assert DriftThresholds(alert_percent=5, critical_percent=5).alert_percent == 5


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValidationError):
        DriftThresholds.model_validate({"alert_percent": 1, "panic_percent": 9})


def test_with_value_replaces_one_section() -> None:
    thresholds = DriftThresholds(alert_percent=2, critical_percent=10)

    config = MatchingConfig().with_value(ConfigKey.DRIFT_THRESHOLDS, thresholds)

    assert config.drift_thresholds is thresholds
    assert config.weights == Weights()
    assert config.as_dict()["drift_thresholds"] == {"alert_percent": 2.0, "critical_percent": 10.0}
