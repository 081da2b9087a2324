"""
Data model for Seq API keys.

- DesiredModel: what the operator declares for one key.
- TrackedState: DesiredModel + last known id/token, held by the caller between calls.
- ApiKeyRecord: the server's view, parsed from a /api/apikeys JSON document.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .fields import ABSENT, Field, FieldState

MINIMUM_LEVELS = ("Verbose", "Debug", "Information", "Warning", "Error", "Fatal")

PRIMARY_PERMISSIONS_FIELD = "AssignedPermissions"
LEGACY_PERMISSIONS_FIELD = "Permissions"


class ModelError(ValueError):
    """Raised when a model violates its attribute constraints."""


@dataclass(frozen=True)
class DesiredModel:
    """User-declared configuration for one API key."""

    title: str
    owner_id: Field[str] = ABSENT
    permissions: Field[FrozenSet[str]] = ABSENT
    minimum_level: Field[str] = ABSENT
    filter: Field[str] = ABSENT
    applied_properties: Field[Dict[str, str]] = ABSENT

    def validate(self) -> None:
        if not isinstance(self.title, str) or not self.title:
            raise ModelError("title must be a non-empty string")
        level = self.minimum_level.get()
        if level is not None and level not in MINIMUM_LEVELS:
            raise ModelError(
                f"minimum_level must be one of {', '.join(MINIMUM_LEVELS)}; got {level!r}"
            )
        perms = self.permissions.get()
        if perms is not None and not all(isinstance(p, str) for p in perms):
            raise ModelError("permissions must be strings")
        props = self.applied_properties.get()
        if props is not None:
            for k, v in props.items():
                if not isinstance(k, str) or not isinstance(v, str):
                    raise ModelError("applied_properties must map strings to strings")

    def unresolved_fields(self) -> List[str]:
        return [
            name
            for name in ("owner_id", "permissions", "minimum_level", "filter", "applied_properties")
            if getattr(self, name).is_pending
        ]

    def resolved(self) -> "DesiredModel":
        """Copy with every pending field forced to absent."""
        return replace(
            self,
            owner_id=self.owner_id.resolved(),
            permissions=self.permissions.resolved(),
            minimum_level=self.minimum_level.resolved(),
            filter=self.filter.resolved(),
            applied_properties=self.applied_properties.resolved(),
        )


@dataclass(frozen=True)
class TrackedState:
    """Working copy of one API key: desired attributes plus server-assigned id and token."""

    model: DesiredModel
    id: str = ""
    token: Field[str] = ABSENT

    @property
    def is_resolved(self) -> bool:
        return not self.token.is_pending and not self.model.unresolved_fields()

    def resolved(self) -> "TrackedState":
        return replace(self, model=self.model.resolved(), token=self.token.resolved())

    # ---------- persistence shape (used by the host-side state store) ----------

    def to_dict(self) -> Dict[str, Any]:
        if not self.is_resolved:
            raise ValueError(f"cannot serialize unresolved state for id={self.id!r}")
        m = self.model
        perms = m.permissions.get()
        return {
            "id": self.id,
            "title": m.title,
            "token": self.token.get(),
            "owner_id": m.owner_id.get(),
            "permissions": sorted(perms) if perms is not None else None,
            "minimum_level": m.minimum_level.get(),
            "filter": m.filter.get(),
            "applied_properties": dict(m.applied_properties.get()) if m.applied_properties.is_present else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackedState":
        perms = data.get("permissions")
        props = data.get("applied_properties")
        model = DesiredModel(
            title=str(data.get("title") or ""),
            owner_id=Field.of(data.get("owner_id")),
            permissions=Field.of(frozenset(perms) if perms is not None else None),
            minimum_level=Field.of(data.get("minimum_level")),
            filter=Field.of(data.get("filter")),
            applied_properties=Field.of(dict(props) if props is not None else None),
        )
        return cls(model=model, id=str(data.get("id") or ""), token=Field.of(data.get("token")))


# ---------- Server-side record ----------

def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _str_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ModelError(f"expected a list of permissions, got {type(value).__name__}")
    return [str(v) for v in value]


@dataclass(frozen=True)
class EventProperty:
    name: str
    value: Any = None


@dataclass(frozen=True)
class DescriptiveFilter:
    filter: str = ""
    filter_non_strict: str = ""


@dataclass(frozen=True)
class InputSettings:
    minimum_level: Optional[str] = None
    filter: Optional[DescriptiveFilter] = None
    applied_properties: List[EventProperty] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "InputSettings":
        flt = data.get("Filter")
        props = data.get("AppliedProperties") or []
        level = data.get("MinimumLevel")
        return cls(
            minimum_level=level if isinstance(level, str) else None,
            filter=(
                DescriptiveFilter(
                    filter=_str(flt.get("Filter")),
                    filter_non_strict=_str(flt.get("FilterNonStrict")),
                )
                if isinstance(flt, dict)
                else None
            ),
            applied_properties=[
                EventProperty(name=_str(p.get("Name")), value=p.get("Value"))
                for p in props
                if isinstance(p, dict)
            ],
        )


@dataclass(frozen=True)
class ApiKeyRecord:
    """Authoritative (but partial) server view of an API key."""

    id: str = ""
    title: str = ""
    token: str = ""
    owner_id: str = ""
    # Newer Seq versions report AssignedPermissions, older ones Permissions.
    assigned_permissions: Optional[List[str]] = None
    permissions: Optional[List[str]] = None
    input_settings: Optional[InputSettings] = None

    @property
    def effective_permissions(self) -> Optional[List[str]]:
        if self.assigned_permissions is not None:
            return self.assigned_permissions
        return self.permissions

    @classmethod
    def from_json(cls, data: Any) -> "ApiKeyRecord":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ModelError(f"API key response must be a JSON object, got {type(data).__name__}")
        settings = data.get("InputSettings")
        return cls(
            id=_str(data.get("Id")),
            title=_str(data.get("Title")),
            token=_str(data.get("Token")),
            owner_id=_str(data.get("OwnerId")),
            assigned_permissions=_str_list(data.get(PRIMARY_PERMISSIONS_FIELD)),
            permissions=_str_list(data.get(LEGACY_PERMISSIONS_FIELD)),
            input_settings=InputSettings.from_json(settings) if isinstance(settings, dict) else None,
        )


__all__ = [
    "ApiKeyRecord",
    "DescriptiveFilter",
    "DesiredModel",
    "EventProperty",
    "FieldState",
    "InputSettings",
    "LEGACY_PERMISSIONS_FIELD",
    "MINIMUM_LEVELS",
    "ModelError",
    "PRIMARY_PERMISSIONS_FIELD",
    "TrackedState",
]
