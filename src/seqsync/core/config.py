"""
Runtime configuration for seqsync.

Sources, lowest to highest precedence:
  defaults (the section dataclasses) < first existing YAML file
  < SEQSYNC_<SECTION>__<KEY> environment variables < CLI overrides

A `.env` file found from the current directory is loaded into the
environment first; variables already set are left untouched.
"""

from __future__ import annotations

import os
import re
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv


class ConfigError(ValueError):
    """Raised when runtime configuration cannot be resolved."""


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False


@dataclass
class SeqSection:
    server_url: str = ""
    api_key: str = ""        # secret, masked in logs
    verify_tls: bool = True
    timeout_sec: int = 30


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"
    file_level: str = "DEBUG"


@dataclass
class StateSection:
    path: str = "./seqsync.state.json"


@dataclass
class DesiredSection:
    path: str = "./seqsync.keys.yml"
    prune: bool = True


_SECTIONS = {
    "app": AppSection,
    "seq": SeqSection,
    "logging": LoggingSection,
    "state": StateSection,
    "desired": DesiredSection,
}


@dataclass
class AppConfig:
    app: AppSection
    seq: SeqSection
    logging: LoggingSection
    state: StateSection
    desired: DesiredSection

    @property
    def run_id(self) -> str:
        """Short random id, generated on first access and then stable."""
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


_DEFAULT_FILES: Tuple[str, ...] = (
    "./seqsync.yml",
    os.path.expanduser("~/.config/seqsync/config.yml"),
    "/etc/seqsync/config.yml",
)

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off", ""}
_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


# ---------- Sources ----------

def _yaml_layer(files: Iterable[str]) -> Dict[str, Any]:
    for path in files:
        if not os.path.exists(path):
            continue
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Top-level YAML must be a mapping: {path}")
        return data
    return {}


def _env_layer(prefix: str) -> Dict[str, Dict[str, str]]:
    """SEQSYNC_SEQ__SERVER_URL=x -> {"seq": {"server_url": "x"}}."""
    layer: Dict[str, Dict[str, str]] = {}
    for name, value in os.environ.items():
        if not name.startswith(prefix):
            continue
        section, sep, key = name[len(prefix):].lower().partition("__")
        if sep and section and key:
            layer.setdefault(section, {})[key] = value
    return layer


def _overlay(target: Dict[str, Dict[str, Any]], layer: Optional[Dict[str, Any]], source: str) -> None:
    for section, values in (layer or {}).items():
        if section not in _SECTIONS:
            raise ConfigError(f"Unknown configuration section '{section}' (from {source})")
        if not isinstance(values, dict):
            raise ConfigError(f"Section '{section}' must be a mapping (from {source})")
        target[section].update(values)


# ---------- Value handling ----------

def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return _VAR.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return value


def _coerce(section: str, key: str, kind: str, value: Any) -> Any:
    if value is None or kind not in ("bool", "int"):
        return value
    if kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"{section}.{key} must be a boolean, got {value!r}")
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}") from exc


def _build_section(name: str, values: Dict[str, Any]) -> Any:
    cls = _SECTIONS[name]
    kinds = {f.name: str(f.type) for f in fields(cls)}
    unknown = sorted(set(values) - set(kinds))
    if unknown:
        raise ConfigError(f"Invalid '{name}' section: unknown key(s) {', '.join(unknown)}")
    return cls(**{k: _coerce(name, k, kinds[k], _expand(v)) for k, v in values.items()})


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "SEQSYNC_",
    *,
    use_dotenv: bool = True,
) -> AppConfig:
    """Resolve the layered configuration into an AppConfig.

    `${VAR}` references in string values are expanded from the environment.
    Booleans and integers are coerced from their text form.

    Raises:
        ConfigError: unreadable file, unknown section or key, bad value, or
            `seq.server_url` missing outside dry-run.
    """
    if use_dotenv:
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(env_path, override=False)

    raw: Dict[str, Dict[str, Any]] = {name: {} for name in _SECTIONS}
    _overlay(raw, _yaml_layer(files), "file")
    _overlay(raw, _env_layer(env_prefix), "environment")
    _overlay(raw, cli_overrides, "command line")

    cfg = AppConfig(**{name: _build_section(name, values) for name, values in raw.items()})

    if not cfg.app.dry_run and not cfg.seq.server_url:
        raise ConfigError("Missing required configuration for non-dry run: seq.server_url")
    return cfg
