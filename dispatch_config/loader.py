"""
Configuration Loader (``dispatch_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``dispatch_config.schema`` types.  The single public entry point for
runtime config is ``dispatch_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly shaped sections  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from dispatch_config.schema import DispatchConfiguration, FieldGrantDef


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_grants(data: dict[str, Any]) -> tuple[FieldGrantDef, ...]:
    """Parse the ``permissions`` section (entity -> role -> fields)."""
    if not isinstance(data, dict):
        raise ValueError(f"permissions must be a mapping, got {type(data).__name__}")
    grants: list[FieldGrantDef] = []
    for entity, roles in data.items():
        if not isinstance(roles, dict):
            raise ValueError(f"permissions.{entity} must map roles to field lists")
        for role, fields in roles.items():
            grants.append(
                FieldGrantDef(
                    entity=str(entity),
                    role=str(role),
                    fields=tuple(str(f) for f in (fields or ())),
                )
            )
    return tuple(grants)


def parse_configuration(data: dict[str, Any]) -> DispatchConfiguration:
    """Parse a whole configuration set.

    ``config_id`` and ``permissions`` are required; everything else defaults.
    """
    defaults = DispatchConfiguration(config_id="", version=0, grants=())
    return DispatchConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        grants=parse_grants(data["permissions"]),
        date_drift_tolerance_hours=int(
            data.get("date_drift_tolerance_hours", defaults.date_drift_tolerance_hours)
        ),
        order_number_prefix=str(
            data.get("order_number_prefix", defaults.order_number_prefix)
        ),
        pending_work_order_states=tuple(
            data.get("pending_work_order_states", defaults.pending_work_order_states)
        ),
        description=data.get("description", ""),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> DispatchConfiguration:
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums regardless of
    key order.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
