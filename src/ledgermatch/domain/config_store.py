"""Persisted overrides for scoring weights, tolerances and drift thresholds.

Defaults live in :mod:`ledgermatch.domain.model.settings`; a row in the config
store replaces the default for its key as long as it validates. Operations load
the effective configuration once and pass it down to the components they call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ledgermatch.domain.audit import AuditTrail
from ledgermatch.domain.errors import InvalidInputError
from ledgermatch.domain.model import (
    AuditAction,
    AuditEntityType,
    ConfigEntry,
    ConfigKey,
    MatchingConfig,
)
from ledgermatch.domain.model.settings import SETTINGS_MODELS

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ledgermatch.domain.ports.persistence import MatchingConfigRepository
    from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork

log = logging.getLogger(__name__)


def load_matching_config(repository: MatchingConfigRepository) -> MatchingConfig:
    """Merge persisted overrides onto the defaults; malformed rows are ignored."""

    config = MatchingConfig()
    for entry in repository.get_all():
        try:
            key = ConfigKey(entry.key)
        except ValueError:
            log.warning("Ignoring unknown config key %r", entry.key)
            continue
        try:
            value = SETTINGS_MODELS[key].model_validate(entry.value)
        except ValidationError as exc:
            log.warning(
                "Stored %s override is malformed, using defaults: %s",
                key,
                exc.errors(include_url=False),
            )
            continue
        config = config.with_value(key, value)
    return config


def current_settings(
    *,
    unit_of_work_factory: Callable[[], ReconciliationUnitOfWork],
) -> MatchingConfig:
    with unit_of_work_factory() as uow:
        return load_matching_config(uow.repositories.config)


def update_matching_config(
    *,
    unit_of_work_factory: Callable[[], ReconciliationUnitOfWork],
    actor: str,
    weights: Mapping[str, Any] | None = None,
    tolerances: Mapping[str, Any] | None = None,
    drift_thresholds: Mapping[str, Any] | None = None,
) -> MatchingConfig:
    """Validate and persist the given sections, auditing each changed key.

    Each section is merged over its current effective value, so callers may
    send only the fields they want to change. Nothing is written unless every
    provided section validates.
    """

    requested: dict[ConfigKey, Mapping[str, Any]] = {
        key: value
        for key, value in (
            (ConfigKey.WEIGHTS, weights),
            (ConfigKey.TOLERANCES, tolerances),
            (ConfigKey.DRIFT_THRESHOLDS, drift_thresholds),
        )
        if value is not None
    }
    if not requested:
        raise InvalidInputError("No config fields provided")

    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        current = load_matching_config(repositories.config)
        effective = current.as_dict()

        updated = current
        for key, patch in requested.items():
            merged = {**effective[str(key)], **patch}
            try:
                value = SETTINGS_MODELS[key].model_validate(merged)
            except ValidationError as exc:
                raise InvalidInputError(f"Invalid {key}: {_describe(exc)}") from exc
            updated = updated.with_value(key, value)

        trail = AuditTrail(repositories.audit_log)
        new_values = updated.as_dict()
        for key in requested:
            previous = effective[str(key)]
            new_value = new_values[str(key)]
            repositories.config.upsert(
                ConfigEntry(key=str(key), value=new_value, updated_by=actor)
            )
            trail.log(
                AuditAction.UPDATE_CONFIG,
                AuditEntityType.CONFIG,
                None,
                actor,
                previous_state={str(key): previous},
                new_state={str(key): new_value},
            )
        uow.commit()

    log.info("Updated matching config keys %s by %s", ", ".join(map(str, requested)), actor)
    return updated


def _describe(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(item) for item in error["loc"])
        parts.append(f"{location}: {error['msg']}" if location else str(error["msg"]))
    return "; ".join(parts)
