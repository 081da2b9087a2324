"""
Desired-state loader.

File format (YAML):

    api_keys:
      ingest-app:                      # resource name, local to this file
        title: "App ingest"            # required
        permissions: [Ingest]
        minimum_level: Warning
        filter: "@Level = 'Error'"
        applied_properties:
          Application: MyApp
        owner_id: user-1               # server-computed when omitted

Attributes that are not declared, or declared empty ("" or {}), are absent.
The exception is `owner_id`, which Seq assigns itself and is therefore
pending until the key is written.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .api_keys import property_value_to_string
from .fields import Field
from .model import DesiredModel, ModelError

ALLOWED_ATTRIBUTES = {
    "title",
    "owner_id",
    "permissions",
    "minimum_level",
    "filter",
    "applied_properties",
}


class DesiredStateError(ValueError):
    """Raised when the desired-state file is malformed."""


def _as_str(name: str, attr: str, value: Any) -> str:
    if not isinstance(value, str):
        raise DesiredStateError(f"{name}.{attr} must be a string, got {type(value).__name__}")
    return value


def _optional_str(name: str, attr: str, value: Any) -> Field[str]:
    if value is None:
        return Field.absent()
    text = _as_str(name, attr, value)
    return Field.present(text) if text else Field.absent()


def parse_api_key(name: str, block: Any) -> DesiredModel:
    """Build and validate a DesiredModel from one `api_keys` entry."""
    if not isinstance(block, dict):
        raise DesiredStateError(f"api key '{name}' must be a mapping")

    unknown = sorted(set(block) - ALLOWED_ATTRIBUTES)
    if unknown:
        raise DesiredStateError(f"api key '{name}' has unknown attribute(s): {', '.join(unknown)}")

    if "title" not in block:
        raise DesiredStateError(f"api key '{name}' is missing required attribute 'title'")

    owner = _optional_str(name, "owner_id", block.get("owner_id"))
    if owner.is_absent:
        owner = Field.pending()

    perms: Field = Field.absent()
    if block.get("permissions") is not None:
        raw = block["permissions"]
        if not isinstance(raw, list):
            raise DesiredStateError(f"{name}.permissions must be a list")
        perms = Field.present(frozenset(_as_str(name, "permissions", p) for p in raw))

    props: Field = Field.absent()
    if block.get("applied_properties") is not None:
        raw = block["applied_properties"]
        if not isinstance(raw, dict):
            raise DesiredStateError(f"{name}.applied_properties must be a mapping")
        if raw:
            props = Field.present({str(k): property_value_to_string(v) for k, v in raw.items()})

    model = DesiredModel(
        title=_as_str(name, "title", block["title"]),
        owner_id=owner,
        permissions=perms,
        minimum_level=_optional_str(name, "minimum_level", block.get("minimum_level")),
        filter=_optional_str(name, "filter", block.get("filter")),
        applied_properties=props,
    )
    try:
        model.validate()
    except ModelError as exc:
        raise DesiredStateError(f"api key '{name}': {exc}") from exc
    return model


def parse_desired(data: Mapping[str, Any]) -> Dict[str, DesiredModel]:
    if not isinstance(data, dict):
        raise DesiredStateError("Top-level YAML must be a mapping")
    keys = data.get("api_keys")
    if keys is None:
        raise DesiredStateError("desired state must contain an 'api_keys' mapping")
    if not isinstance(keys, dict):
        raise DesiredStateError("'api_keys' must be a mapping of name -> attributes")
    return {str(name): parse_api_key(str(name), block) for name, block in keys.items()}


def load_desired(path: str) -> Dict[str, DesiredModel]:
    """Read the desired-state YAML file. Returns resource name -> DesiredModel."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Desired state file not found: {path}")
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise DesiredStateError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_desired(data)
