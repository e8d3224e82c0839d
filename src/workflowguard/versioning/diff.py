"""Structural diff between two workflow snapshot payloads.

Snapshots are raw HubSpot workflow JSON whose schema we don't own. The only
structure we rely on is a list of steps stored under one of a few known
keys. Steps are reconciled as a set, not as a sequence: reordering steps is
not a change, and each step is matched to its counterpart by an identity
chain (``id`` → ``actionId`` → ``type``/``actionType``/``settings``).

Everything here is pure and synchronous.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from workflowguard.exceptions import InternalError

# Checked in order; the first key holding a list wins.
STEP_CONTAINER_KEYS: tuple[str, ...] = ("actions", "steps", "workflowActions")

NO_CHANGES = "No changes detected"


@dataclass(frozen=True)
class ChangeSet:
    """Step counts between a snapshot and its predecessor."""

    added: int = 0
    modified: int = 0
    removed: int = 0

    @property
    def is_empty(self) -> bool:
        return self.added == 0 and self.modified == 0 and self.removed == 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class VersionComparison:
    changes: ChangeSet
    summary: str
    has_changes: bool


def canonical_json(value: Any) -> str:
    """Serialize *value* deterministically (sorted keys, no whitespace)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def load_payload(data: Any) -> Any:
    """Return *data* as a JSON value, parsing it first if stored as a string."""
    if isinstance(data, (str, bytes)):
        try:
            return json.loads(data)
        except ValueError as exc:
            raise InternalError(f"Malformed snapshot payload: {exc}") from exc
    return data


def extract_steps(
    data: Any,
    keys: Sequence[str] = STEP_CONTAINER_KEYS,
) -> list[Any]:
    """Return the step list of a snapshot payload.

    Payloads without any known step container yield an empty list rather
    than an error.
    """
    payload = load_payload(data)
    if not isinstance(payload, dict):
        return []
    for key in keys:
        steps = payload.get(key)
        if isinstance(steps, list):
            return steps
    return []


# ---------------------------------------------------------------------------
# Step identity
# ---------------------------------------------------------------------------

def _field(step: Any, name: str) -> Any:
    return step.get(name) if isinstance(step, dict) else None


def _match_by_id(a: Any, b: Any) -> bool | None:
    if _field(a, "id") and _field(b, "id"):
        return _field(a, "id") == _field(b, "id")
    return None


def _match_by_action_id(a: Any, b: Any) -> bool | None:
    if _field(a, "actionId") and _field(b, "actionId"):
        return _field(a, "actionId") == _field(b, "actionId")
    return None


def _match_by_structure(a: Any, b: Any) -> bool:
    return (
        _field(a, "type") == _field(b, "type")
        and _field(a, "actionType") == _field(b, "actionType")
        and canonical_json(_field(a, "settings") or {})
        == canonical_json(_field(b, "settings") or {})
    )


# Each predicate returns True/False when it can decide, None to defer.
IDENTITY_CHAIN: tuple[Callable[[Any, Any], bool | None], ...] = (
    _match_by_id,
    _match_by_action_id,
)


def steps_equal(a: Any, b: Any) -> bool:
    """Return True when two steps refer to the same workflow step."""
    if a is None or b is None:
        return False
    for predicate in IDENTITY_CHAIN:
        decided = predicate(a, b)
        if decided is not None:
            return decided
    return _match_by_structure(a, b)


def _find_match(step: Any, candidates: list[Any]) -> Any | None:
    for candidate in candidates:
        if steps_equal(step, candidate):
            return candidate
    return None


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------

def calculate_changes(current: Any, previous: Any = None) -> ChangeSet:
    """Count added, modified and removed steps of *current* vs *previous*.

    With no previous snapshot every current step counts as added.
    """
    if current is None:
        return ChangeSet()

    current_steps = extract_steps(current)
    if previous is None:
        return ChangeSet(added=len(current_steps))

    previous_steps = extract_steps(previous)

    added = 0
    modified = 0
    for step in current_steps:
        match = _find_match(step, previous_steps)
        if match is None:
            added += 1
        elif canonical_json(step) != canonical_json(match):
            modified += 1

    removed = sum(
        1 for step in previous_steps if _find_match(step, current_steps) is None
    )
    return ChangeSet(added=added, modified=modified, removed=removed)


def change_summary(changes: ChangeSet) -> str:
    """Human-readable one-liner, e.g. ``"2 step(s) added, 1 step(s) removed"``."""
    parts: list[str] = []
    if changes.added > 0:
        parts.append(f"{changes.added} step(s) added")
    if changes.modified > 0:
        parts.append(f"{changes.modified} step(s) modified")
    if changes.removed > 0:
        parts.append(f"{changes.removed} step(s) removed")
    return ", ".join(parts) if parts else NO_CHANGES


def compare_versions(base: Any, other: Any) -> VersionComparison:
    """Diff *other* against *base*."""
    base_payload = load_payload(base)
    other_payload = load_payload(other)
    changes = calculate_changes(other_payload, base_payload)
    return VersionComparison(
        changes=changes,
        summary=change_summary(changes),
        has_changes=canonical_json(base_payload) != canonical_json(other_payload),
    )


def copy_payload(data: Any) -> Any:
    """Deep copy a payload so the new snapshot shares no state with the source."""
    return copy.deepcopy(load_payload(data))
