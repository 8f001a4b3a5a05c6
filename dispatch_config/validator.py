"""
Configuration Validator (``dispatch_config.validator``).

Checks a parsed ``DispatchConfiguration`` against the kernel vocabularies
(roles, entities, fields, work-order states) before it is handed out.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dispatch_config.schema import DispatchConfiguration
from dispatch_kernel.domain.actor import StaffRole
from dispatch_kernel.domain.permissions import ENTITY_FIELDS, Entity
from dispatch_kernel.domain.states import WorkOrderState


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: DispatchConfiguration) -> ConfigValidationResult:
    """Validate a configuration set; never raises."""
    result = ConfigValidationResult()
    _validate_grants(config, result)

    if config.date_drift_tolerance_hours < 0:
        result.add_error(
            "date_drift_tolerance_hours must be >= 0, "
            f"got {config.date_drift_tolerance_hours}"
        )
    if not config.order_number_prefix.strip():
        result.add_error("order_number_prefix must not be empty")

    known_states = {s.value for s in WorkOrderState}
    for state in config.pending_work_order_states:
        if state not in known_states:
            result.add_error(f"Unknown pending work-order state: {state}")
    if not config.pending_work_order_states:
        result.add_warning("No pending work-order states; balance loads will be zero")

    return result


def _validate_grants(
    config: DispatchConfiguration, result: ConfigValidationResult
) -> None:
    known_roles = {r.value for r in StaffRole}
    seen: set[tuple[str, str]] = set()
    for grant in config.grants:
        try:
            entity = Entity(grant.entity)
        except ValueError:
            result.add_error(f"Unknown entity in permissions: {grant.entity}")
            continue
        if grant.role not in known_roles:
            result.add_error(
                f"Unknown role in permissions.{grant.entity}: {grant.role}"
            )
        key = (grant.entity, grant.role)
        if key in seen:
            result.add_error(f"Duplicate grant for {grant.role} on {grant.entity}")
        seen.add(key)
        unknown = set(grant.fields) - ENTITY_FIELDS[entity]
        if unknown:
            result.add_error(
                f"Unknown {grant.entity} fields for {grant.role}: {sorted(unknown)}"
            )
        if not grant.fields:
            result.add_warning(f"{grant.role} has an empty grant on {grant.entity}")
