"""Diff engine for function reconciliation.

Compares the desired configuration against the deployed function record
to decide which action brings the function to the desired state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .models import DesiredConfig, PersistedState, RemoteRecord


class Action(Enum):
    """Reconciliation actions, in decision priority order."""

    CREATE = "create"
    NOOP = "noop"
    UPDATE_CODE_AND_CONFIG = "update_code_and_config"
    UPDATE_CONFIG_ONLY = "update_config_only"
    REPLACE = "replace"


# Change-detection contract: equality on exactly these fields means no-op.
COMPARABLE_FIELDS = (
    "description",
    "runtime",
    "role",
    "handler",
    "memory",
    "timeout",
    "env",
    "content_hash",
)


def _remote_fields(record: RemoteRecord) -> dict[str, Any]:
    return {
        "description": record.description,
        "runtime": record.runtime,
        "role": record.role_arn,
        "handler": record.handler,
        "memory": record.memory,
        "timeout": record.timeout,
        "env": record.env,
        "content_hash": record.content_hash,
    }


def _desired_fields(config: DesiredConfig) -> dict[str, Any]:
    return {
        "description": config.description,
        "runtime": config.runtime,
        "role": config.effective_role,
        "handler": config.handler,
        "memory": config.memory,
        "timeout": config.timeout,
        "env": config.env,
        "content_hash": config.content_hash,
    }


def changed_fields(previous: RemoteRecord, desired: DesiredConfig) -> tuple[str, ...]:
    """Names of the comparable fields whose values differ, in fixed order."""
    prev = _remote_fields(previous)
    curr = _desired_fields(desired)
    return tuple(name for name in COMPARABLE_FIELDS if prev[name] != curr[name])


# Attached dependency layer, compared only when a layer is desired
LAYER_FIELD = "layer"


def layer_changed(previous: RemoteRecord, desired: DesiredConfig) -> bool:
    """Whether the desired dependency layer is not the one attached to the function."""
    if desired.layer is None:
        return False
    return previous.layers != (desired.layer.arn,)


def decide(previous: RemoteRecord | None, desired: DesiredConfig) -> Action:
    """
    Decide the primary action for a function.

    Args:
        previous: Deployed record, or None if the function does not exist
        desired: Desired configuration with its content hash set

    Returns:
        CREATE, NOOP, UPDATE_CODE_AND_CONFIG or UPDATE_CONFIG_ONLY
    """
    if previous is None:
        return Action.CREATE

    changed = changed_fields(previous, desired)
    if not changed:
        return Action.NOOP
    if "content_hash" in changed:
        return Action.UPDATE_CODE_AND_CONFIG
    return Action.UPDATE_CONFIG_ONLY


@dataclass(frozen=True)
class Plan:
    """Outcome of diffing one function.

    Attributes:
        action: Primary action for the function under its desired name
        changed: Comparable fields that differ, plus ``layer`` when the
            dependency layer must be swapped (empty for CREATE and NOOP)
        replaces: Name of a previously deployed function to delete after
            the new one is in place, when the function was renamed
    """

    action: Action
    changed: tuple[str, ...] = ()
    replaces: str | None = None

    @property
    def actions(self) -> list[Action]:
        """Actions in execution order; REPLACE always runs last."""
        result = [self.action]
        if self.replaces is not None:
            result.append(Action.REPLACE)
        return result

    @property
    def needs_code(self) -> bool:
        """Whether the artifact must be uploaded and placed."""
        return self.action in (Action.CREATE, Action.UPDATE_CODE_AND_CONFIG)

    @property
    def needs_config_update(self) -> bool:
        """Whether a configuration update call is required.

        CREATE carries the full configuration, and a pure code change is
        completed by the code update alone.
        """
        if self.action in (Action.CREATE, Action.NOOP):
            return False
        return any(name != "content_hash" for name in self.changed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "changed": list(self.changed),
            "replaces": self.replaces,
        }


def plan(
    previous: RemoteRecord | None,
    desired: DesiredConfig,
    persisted: PersistedState | None = None,
) -> Plan:
    """
    Compute the full plan for a reconciliation pass.

    Args:
        previous: Record freshly read from Lambda for ``desired.name``
        desired: Desired configuration with its content hash set
        persisted: State saved by the last successful run, if any

    Returns:
        Plan with the primary action and an optional replacement target
    """
    action = decide(previous, desired)
    changed = changed_fields(previous, desired) if previous is not None else ()
    if previous is not None and layer_changed(previous, desired):
        changed = (*changed, LAYER_FIELD)
        if action is Action.NOOP:
            action = Action.UPDATE_CONFIG_ONLY
    replaces = None
    if persisted is not None and persisted.name and persisted.name != desired.name:
        replaces = persisted.name
    return Plan(action=action, changed=changed, replaces=replaces)
