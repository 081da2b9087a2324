from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .api_keys import ApiKeyReconciler, MissingIdError
from .model import DesiredModel, TrackedState
from .planner import Decision, decide
from .seq_client import SeqError
from .state_store import StateStore


@dataclass(frozen=True)
class ApplyResult:
    name: str
    op: str
    status: str
    id: str = ""
    reason: str = ""
    error: str = ""


class ApiKeyApplier:
    """Drive the reconciler for every declared API key and keep the state file current.

    Statuses: CREATED, UPDATED, UNCHANGED, DELETED, PLANNED (dry run), ERROR.
    A failure on one key is recorded and the run continues with the next.
    """

    def __init__(
        self,
        reconciler: ApiKeyReconciler,
        store: StateStore,
        *,
        dry_run: bool = False,
        prune: bool = True,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        self.reconciler = reconciler
        self.store = store
        self.dry_run = dry_run
        self.prune = prune
        self.log = logger or logging.getLogger("seqsync.applier")

    def _refresh(self, name: str, tracked: Optional[TrackedState]) -> Tuple[Optional[TrackedState], str]:
        if tracked is None or self.dry_run:
            return tracked, ""
        refreshed = self.reconciler.read(tracked.id, tracked)
        if refreshed is None:
            self.log.warning("api key '%s' (id=%s) is gone remotely; untracking", name, tracked.id)
            self.store.remove(name)
            self.store.save()
            return None, "Removed remotely"
        self.store.put(name, refreshed)
        self.store.save()
        return refreshed, ""

    def _apply_one(self, name: str, desired: DesiredModel) -> ApplyResult:
        tracked, note = self._refresh(name, self.store.get(name))
        decision: Decision = decide(desired, tracked)
        reason = f"{note}; {decision.reason}" if note else decision.reason
        current_id = tracked.id if tracked else ""

        if decision.op == "NOOP":
            return ApplyResult(name, decision.op, "UNCHANGED", id=current_id, reason=reason)
        if self.dry_run:
            return ApplyResult(name, decision.op, "PLANNED", id=current_id, reason=reason)

        if decision.op == "CREATE":
            state = self.reconciler.create(desired)
            self.store.put(name, state)
            self.store.save()
            return ApplyResult(name, decision.op, "CREATED", id=state.id, reason=reason)

        assert tracked is not None
        state = self.reconciler.update(tracked.id, desired, tracked)
        self.store.put(name, state)
        self.store.save()
        return ApplyResult(name, decision.op, "UPDATED", id=state.id, reason=reason)

    def _delete_one(self, name: str, tracked: TrackedState) -> ApplyResult:
        decision = decide(None, tracked)
        if self.dry_run:
            return ApplyResult(name, decision.op, "PLANNED", id=tracked.id, reason=decision.reason)
        self.reconciler.delete(tracked.id)
        self.store.remove(name)
        self.store.save()
        return ApplyResult(name, decision.op, "DELETED", id=tracked.id, reason=decision.reason)

    def apply(self, desired: Mapping[str, DesiredModel]) -> Tuple[List[ApplyResult], Dict[str, int]]:
        results: List[ApplyResult] = []
        counts: Dict[str, int] = {}

        for name in sorted(desired):
            try:
                res = self._apply_one(name, desired[name])
            except (SeqError, MissingIdError) as e:
                # Already logged at ERROR by the reconciler.
                res = ApplyResult(name, "", "ERROR", error=str(e))
            self.log.info("%s %s -> %s (%s)", res.op or "-", name, res.status, res.reason or res.error)
            self._append(results, counts, res)

        if self.prune:
            for name in self.store.names():
                if name in desired:
                    continue
                tracked = self.store.get(name)
                assert tracked is not None
                try:
                    res = self._delete_one(name, tracked)
                except SeqError as e:
                    res = ApplyResult(name, "DELETE", "ERROR", id=tracked.id, error=str(e))
                self.log.info("%s %s -> %s (%s)", res.op, name, res.status, res.reason or res.error)
                self._append(results, counts, res)

        return results, counts

    @staticmethod
    def _append(results: List[ApplyResult], counts: Dict[str, int], res: ApplyResult) -> None:
        results.append(res)
        counts[res.status] = counts.get(res.status, 0) + 1
