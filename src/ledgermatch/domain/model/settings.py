"""Scoring weights, tolerances and drift thresholds."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledgermatch.domain.model.entity import utcnow
from ledgermatch.domain.model.enums import ConfigKey

if TYPE_CHECKING:
    from datetime import datetime

WEIGHT_TOTAL = 100


class _SettingsModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Weights(_SettingsModel):
    amount: float = Field(default=40, ge=0, le=100)
    address: float = Field(default=30, ge=0, le=100)
    time: float = Field(default=20, ge=0, le=100)
    token: float = Field(default=10, ge=0, le=100)

    @model_validator(mode="after")
    def _check_total(self) -> Self:
        total = self.amount + self.address + self.time + self.token
        if abs(total - WEIGHT_TOTAL) > 1e-9:
            raise ValueError(f"Weights must sum to {WEIGHT_TOTAL}, got {total:g}")
        return self


class Tolerances(_SettingsModel):
    amount_percent: float = Field(default=0.01, ge=0, le=1)
    time_window_ms: int = Field(default=3_600_000, ge=0)
    block_window: int = Field(default=100, ge=0)


class DriftThresholds(_SettingsModel):
    alert_percent: float = Field(default=1.0, ge=0, le=100)
    critical_percent: float = Field(default=5.0, ge=0, le=100)

    @model_validator(mode="after")
    def _check_order(self) -> Self:
        if self.alert_percent > self.critical_percent:
            raise ValueError(
                f"alert_percent ({self.alert_percent:g}) must not exceed "
                f"critical_percent ({self.critical_percent:g})"
            )
        return self


SETTINGS_MODELS: dict[ConfigKey, type[_SettingsModel]] = {
    ConfigKey.WEIGHTS: Weights,
    ConfigKey.TOLERANCES: Tolerances,
    ConfigKey.DRIFT_THRESHOLDS: DriftThresholds,
}


@dataclass(frozen=True, slots=True)
class MatchingConfig:
    """Effective settings for one operation, defaults merged with overrides."""

    weights: Weights = field(default_factory=Weights)
    tolerances: Tolerances = field(default_factory=Tolerances)
    drift_thresholds: DriftThresholds = field(default_factory=DriftThresholds)

    def with_value(self, key: ConfigKey, value: _SettingsModel) -> MatchingConfig:
        return replace(self, **{str(key): value})

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return {
            str(ConfigKey.WEIGHTS): self.weights.model_dump(),
            str(ConfigKey.TOLERANCES): self.tolerances.model_dump(),
            str(ConfigKey.DRIFT_THRESHOLDS): self.drift_thresholds.model_dump(),
        }


DEFAULT_MATCHING_CONFIG = MatchingConfig()


@dataclass(eq=False, kw_only=True)
class ConfigEntry:
    """One persisted override row of the config store."""

    key: str
    value: dict[str, Any]
    updated_by: str | None = None
    updated_at: datetime = field(default_factory=utcnow)
