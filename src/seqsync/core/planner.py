"""
Plan the operation for one API key from its desired model and tracked state.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from .model import DesiredModel, TrackedState

Op = Literal["NOOP", "CREATE", "UPDATE", "DELETE"]

COMPARE_KEYS = ("title", "owner_id", "permissions", "minimum_level", "filter", "applied_properties")

# Seq fills these in itself (owner, empty permission list) when the key omits them.
SERVER_DEFAULTED = ("owner_id", "permissions")


@dataclass(frozen=True)
class Decision:
    """Diff outcome for a single API key.

    Attributes:
        op: One of ``"NOOP"``, ``"CREATE"``, ``"UPDATE"`` or ``"DELETE"``.
        reason: Human-friendly explanation of the decision.
    """
    op: Op
    reason: str


def comparable(model: DesiredModel) -> Dict[str, Any]:
    """Plain values for comparison; absent, pending and empty values all map to None."""
    perms = model.permissions.get()
    return {
        "title": model.title,
        "owner_id": model.owner_id.get(),
        "permissions": frozenset(perms) if perms is not None else None,
        "minimum_level": model.minimum_level.get(),
        "filter": model.filter.get() or None,
        "applied_properties": model.applied_properties.get() or None,
    }


def decide(desired: Optional[DesiredModel], tracked: Optional[TrackedState]) -> Decision:
    """Compute a :class:`Decision` from desired vs tracked state.

    ``owner_id`` and ``permissions`` are only compared when the operator
    declared them; otherwise whatever the server assigned is accepted.
    """
    if desired is None:
        if tracked is None:
            return Decision(op="NOOP", reason="Not declared, not tracked")
        return Decision(op="DELETE", reason="No longer declared")

    if tracked is None:
        return Decision(op="CREATE", reason="Not tracked")

    want = comparable(desired)
    have = comparable(tracked.model)
    for k in COMPARE_KEYS:
        if k in SERVER_DEFAULTED and not getattr(desired, k).is_present:
            continue
        if want[k] != have[k]:
            return Decision(op="UPDATE", reason=f"Field differs: {k}")

    return Decision(op="NOOP", reason="Identical")
