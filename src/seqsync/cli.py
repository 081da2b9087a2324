"""
Command-line interface for seqsync.

Usage (examples):
  - Plan only (no HTTP):
      seqsync apply --desired ./seqsync.keys.yml --dry-run

  - Reconcile against a server:
      seqsync --server-url https://seq.example --api-key $SEQ_API_KEY apply --desired ./seqsync.keys.yml

  - Adopt an existing key, then forget one:
      seqsync import ingest-app apikey-123
      seqsync delete ingest-app

  - Probe the server:
      seqsync --server-url https://seq.example health
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Iterable, Optional

from .core.api_keys import ApiKeyReconciler, MissingIdError, NotConfiguredError
from .core.applier import ApiKeyApplier, ApplyResult
from .core.config import AppConfig, ConfigError, load_config
from .core.desired import DesiredStateError, load_desired
from .core.health import read_health
from .core.logging_setup import build_logger
from .core.seq_client import SeqClient, SeqError
from .core.state_store import StateStore, StateStoreError
from .reporting import print_rows, summarize_counts

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_VALIDATION_ERROR = 3
EXIT_NETWORK_ERROR = 4


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="seqsync", description="Declarative Seq API key management")

    # Seq / HTTP
    p.add_argument("--server-url", default=None, help="Seq server URL")
    p.add_argument("--api-key", default=None, help="Seq API key used to authenticate")
    p.add_argument("--verify-tls", default=None, choices=["true", "false"], help="Verify TLS (https)")
    p.add_argument("--timeout-sec", type=int, default=None, help="HTTP timeout seconds")

    # Logging
    p.add_argument("--logs-dir", default=None, help="Logs base directory")
    p.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
    p.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")

    p.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    sub = p.add_subparsers(dest="cmd", required=True)

    a = sub.add_parser("apply", help="Reconcile declared API keys against Seq")
    a.add_argument("--desired", default=None, help="Desired-state YAML file")
    a.add_argument("--state", default=None, help="State file (JSON)")
    a.add_argument("--dry-run", action="store_true", help="Plan only, no network calls")
    a.add_argument("--no-prune", action="store_true", help="Keep tracked keys that are no longer declared")

    i = sub.add_parser("import", help="Track an existing API key under a resource name")
    i.add_argument("name", help="Resource name to record in state")
    i.add_argument("id", help="Seq API key id")
    i.add_argument("--state", default=None, help="State file (JSON)")

    d = sub.add_parser("delete", help="Delete a tracked API key and untrack it")
    d.add_argument("name", help="Resource name in state")
    d.add_argument("--state", default=None, help="State file (JSON)")

    sub.add_parser("health", help="Print the Seq /health status")

    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Dict[str, Any]] = {"app": {}, "seq": {}, "logging": {}, "state": {}, "desired": {}}

    def put(section: str, key: str, value: Any) -> None:
        if value is not None:
            overrides[section][key] = value

    put("seq", "server_url", args.server_url)
    put("seq", "api_key", args.api_key)
    put("seq", "verify_tls", args.verify_tls)
    put("seq", "timeout_sec", args.timeout_sec)
    put("logging", "base_dir", args.logs_dir)
    put("logging", "console_level", args.console_level)
    put("logging", "file_level", args.file_level)
    put("state", "path", getattr(args, "state", None))
    put("desired", "path", getattr(args, "desired", None))
    if getattr(args, "dry_run", False):
        overrides["app"]["dry_run"] = True
    if getattr(args, "no_prune", False):
        overrides["desired"]["prune"] = False
    return {k: v for k, v in overrides.items() if v}


def _build_client(cfg: AppConfig, logger: logging.LoggerAdapter) -> Optional[SeqClient]:
    if not cfg.seq.server_url:
        return None
    return SeqClient(
        cfg.seq.server_url,
        cfg.seq.api_key,
        verify_tls=bool(cfg.seq.verify_tls),
        timeout_sec=int(cfg.seq.timeout_sec),
        logger=logger,
    )


def _apply_cmd(args: argparse.Namespace, cfg: AppConfig, logger: logging.LoggerAdapter) -> int:
    desired = load_desired(cfg.desired.path)
    logger.info("Loaded %d declared api key(s) from %s", len(desired), cfg.desired.path)

    store = StateStore(cfg.state.path).load()
    client = None if cfg.app.dry_run else _build_client(cfg, logger)
    applier = ApiKeyApplier(
        ApiKeyReconciler(client, logger=logger),
        store,
        dry_run=cfg.app.dry_run,
        prune=cfg.desired.prune,
        logger=logger,
    )
    results, counts = applier.apply(desired)

    summary = summarize_counts(counts)
    logger.info("%s summary: %s", "Dry-run" if cfg.app.dry_run else "Apply", summary)
    print_rows(results, args.format)
    print(summary)
    return EXIT_GENERIC_ERROR if counts.get("ERROR", 0) else EXIT_OK


def _import_cmd(args: argparse.Namespace, cfg: AppConfig, logger: logging.LoggerAdapter) -> int:
    store = StateStore(cfg.state.path).load()
    if args.name in store:
        raise DesiredStateError(f"'{args.name}' is already tracked (id={store.get(args.name).id})")

    reconciler = ApiKeyReconciler(_build_client(cfg, logger), logger=logger)
    state = reconciler.import_state(args.id)
    store.put(args.name, state)
    store.save()
    logger.info("Imported api key id=%s as '%s'", state.id, args.name)
    print_rows([ApplyResult(args.name, "IMPORT", "IMPORTED", id=state.id, reason=state.model.title)], args.format)
    return EXIT_OK


def _delete_cmd(args: argparse.Namespace, cfg: AppConfig, logger: logging.LoggerAdapter) -> int:
    store = StateStore(cfg.state.path).load()
    tracked = store.get(args.name)
    if tracked is None:
        logger.info("'%s' is not tracked; nothing to delete", args.name)
        print_rows([ApplyResult(args.name, "DELETE", "UNCHANGED", reason="Not tracked")], args.format)
        return EXIT_OK

    reconciler = ApiKeyReconciler(_build_client(cfg, logger), logger=logger)
    reconciler.delete(tracked.id)
    store.remove(args.name)
    store.save()
    print_rows([ApplyResult(args.name, "DELETE", "DELETED", id=tracked.id)], args.format)
    return EXIT_OK


def _health_cmd(args: argparse.Namespace, cfg: AppConfig, logger: logging.LoggerAdapter) -> int:
    client = _build_client(cfg, logger)
    logger.info("Probing %s/health (authenticated=%s)", cfg.seq.server_url, bool(client and client.authenticated))
    try:
        status = read_health(client)
    except SeqError as exc:
        logger.error("Health probe failed: %s", exc)
        raise
    print(status)
    return EXIT_OK


_COMMANDS = {
    "apply": _apply_cmd,
    "import": _import_cmd,
    "delete": _delete_cmd,
    "health": _health_cmd,
}


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        cfg = load_config(_cli_overrides(args))
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger = build_logger(
        run_id=cfg.run_id,
        action=args.cmd,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        extra={"server": cfg.seq.server_url},
    )
    logger.info("Starting seqsync %s (dry_run=%s)", args.cmd, cfg.app.dry_run)

    try:
        return _COMMANDS[args.cmd](args, cfg, logger)
    except (ConfigError, NotConfiguredError) as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    except (FileNotFoundError, DesiredStateError, StateStoreError, MissingIdError) as exc:
        logger.error("Validation error: %s", exc)
        return EXIT_VALIDATION_ERROR
    except SeqError as exc:
        # The failing operation already logged the error.
        logger.info("Exiting after network/HTTP error: %s", exc)
        return EXIT_NETWORK_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
