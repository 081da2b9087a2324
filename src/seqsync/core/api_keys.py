"""
ApiKeyReconciler: create/read/update/delete/import for Seq API keys (/api/apikeys).

The server response is partial authority: it overrides the fields it reports
and never erases user intent for fields it leaves out (see `apply_response`).

Some Seq releases accept `AssignedPermissions`, others only `Permissions`.
Writes are sent with the primary name first and, when the server rejects that
field, resent exactly once with the legacy name.

Ref: https://datalust.co/docs/server-http-api#api-apikeys
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Union

from .fields import Field
from .model import (
    LEGACY_PERMISSIONS_FIELD,
    PRIMARY_PERMISSIONS_FIELD,
    ApiKeyRecord,
    DesiredModel,
    ModelError,
    TrackedState,
)
from .seq_client import HttpError, NotFoundError, SeqClient, TransportError

COLLECTION_PATH = "/api/apikeys"

Payload = Dict[str, Any]


class NotConfiguredError(Exception):
    """Raised when an operation runs before a Seq client was configured."""

    def __init__(self, message: str = "Missing configured Seq client") -> None:
        super().__init__(message)


class MissingIdError(ValueError):
    """Raised when an operation needs a tracked id and none is known."""


def item_path(api_key_id: str) -> str:
    return f"{COLLECTION_PATH}/{api_key_id}"


# ---------- request body ----------

def build_request_body(model: DesiredModel, permissions_field: str, api_key_id: str = "") -> Payload:
    """Wire body for POST/PUT. Only present fields are sent."""
    body: Payload = {"Title": model.title}

    # Seq requires the body id to match the URL on update.
    if api_key_id:
        body["Id"] = api_key_id

    owner = model.owner_id.get()
    if owner:
        body["OwnerId"] = owner

    if model.permissions.is_present:
        body[permissions_field] = sorted(model.permissions.value)

    settings: Payload = {}
    if model.minimum_level.is_present:
        settings["MinimumLevel"] = model.minimum_level.value
    if model.filter.is_present:
        settings["Filter"] = {
            "Filter": model.filter.value,
            "FilterNonStrict": model.filter.value,
        }
    if model.applied_properties.is_present:
        settings["AppliedProperties"] = [
            {"Name": name, "Value": value}
            for name, value in sorted(model.applied_properties.value.items())
        ]
    if settings:
        body["InputSettings"] = settings

    return body


def is_permissions_field_rejection(err: Exception) -> bool:
    """True when the server rejected the primary permissions field name.

    Matching is textual: a 400 whose message names the field. A differently
    worded rejection will not match.
    """
    return (
        isinstance(err, HttpError)
        and err.status_code == 400
        and PRIMARY_PERMISSIONS_FIELD in (err.message or "")
    )


# ---------- response merge ----------

def property_value_to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def apply_response(state: TrackedState, record: ApiKeyRecord, *, keep_token: bool) -> TrackedState:
    """Merge a server record into `state`.

    keep_token=False (create): an empty returned token leaves the token absent.
    keep_token=True (read/update): an empty returned token keeps the tracked value.
    Pending fields are forced to absent before returning.
    """
    m = state.model
    new_id = record.id or state.id
    title = record.title or m.title
    owner_id = Field.present(record.owner_id) if record.owner_id else m.owner_id

    if record.token:
        token: Field[str] = Field.present(record.token)
    elif keep_token:
        token = state.token
    else:
        token = Field.absent()

    perms = record.effective_permissions
    permissions = Field.present(frozenset(perms)) if perms is not None else m.permissions

    settings = record.input_settings
    if settings is None:
        minimum_level: Field[str] = Field.absent()
        flt: Field[str] = Field.absent()
        props: Field[Dict[str, str]] = Field.absent()
    else:
        minimum_level = Field.present(settings.minimum_level) if settings.minimum_level else Field.absent()

        filter_value = ""
        if settings.filter is not None:
            filter_value = settings.filter.filter_non_strict or settings.filter.filter
        flt = Field.present(filter_value) if filter_value else Field.absent()

        if settings.applied_properties:
            props = Field.present({
                p.name: property_value_to_string(p.value) for p in settings.applied_properties
            })
        else:
            props = Field.absent()

    merged = TrackedState(
        model=replace(
            m,
            title=title,
            owner_id=owner_id,
            permissions=permissions,
            minimum_level=minimum_level,
            filter=flt,
            applied_properties=props,
        ),
        id=new_id,
        token=token,
    )
    return merged.resolved()


# ---------- reconciler ----------

class ApiKeyReconciler:
    """Maps one API key's desired state onto Seq CRUD calls.

    Holds no per-resource state: every call receives and returns its own
    TrackedState, so distinct ids may be reconciled concurrently.
    """

    def __init__(
        self,
        client: Optional[SeqClient],
        *,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        self.client = client
        self.log = logger or logging.getLogger("seqsync.api_keys")

    def _require_client(self) -> SeqClient:
        if self.client is None:
            self.log.error("Provider not configured: missing Seq client")
            raise NotConfiguredError()
        return self.client

    def _record(self, data: Any) -> ApiKeyRecord:
        try:
            return ApiKeyRecord.from_json(data)
        except ModelError as exc:
            raise TransportError(f"unexpected API key response: {exc}") from exc

    def _write(self, method: str, path: str, desired: DesiredModel, api_key_id: str = "") -> ApiKeyRecord:
        """POST/PUT with the single permissions-field fallback."""
        client = self._require_client()
        body = build_request_body(desired, PRIMARY_PERMISSIONS_FIELD, api_key_id)
        try:
            return self._record(client.execute(method, path, body))
        except HttpError as exc:
            if not is_permissions_field_rejection(exc):
                raise
            self.log.info(
                "%s %s rejected %s; retrying with legacy field %s",
                method, path, PRIMARY_PERMISSIONS_FIELD, LEGACY_PERMISSIONS_FIELD,
            )
        legacy = build_request_body(desired, LEGACY_PERMISSIONS_FIELD, api_key_id)
        return self._record(client.execute(method, path, legacy))

    def create(self, desired: DesiredModel) -> TrackedState:
        self._require_client()
        self.log.info("CREATE api key title=%r", desired.title)
        try:
            record = self._write("POST", COLLECTION_PATH, desired)
        except (HttpError, TransportError) as exc:
            self.log.error("Failed to create Seq API key: %s", exc)
            raise
        state = apply_response(TrackedState(model=desired), record, keep_token=False)
        if not state.id:
            # Untrackable: the next run would create a duplicate.
            exc = TransportError("create response carried no Id", method="POST", url=COLLECTION_PATH)
            self.log.error("Failed to create Seq API key: %s", exc)
            raise exc
        self.log.info("CREATED api key id=%s", state.id)
        return state

    def read(self, api_key_id: str, state: Optional[TrackedState] = None) -> Optional[TrackedState]:
        """Refresh a tracked key. Returns None when the key no longer exists remotely."""
        client = self._require_client()
        if not api_key_id:
            self.log.info("READ without id; treating api key as removed")
            return None
        try:
            record = self._record(client.execute("GET", item_path(api_key_id)))
        except NotFoundError:
            self.log.warning("api key id=%s not found; removing from state", api_key_id)
            return None
        except (HttpError, TransportError) as exc:
            self.log.error("Failed to read Seq API key: %s", exc)
            raise
        base = state or TrackedState(model=DesiredModel(title=""), id=api_key_id)
        return apply_response(replace(base, id=api_key_id), record, keep_token=True)

    def update(self, api_key_id: str, desired: DesiredModel, state: TrackedState) -> TrackedState:
        self._require_client()
        if not api_key_id:
            self.log.error("Missing id: cannot update API key without an id in state")
            raise MissingIdError("Cannot update API key without an id in state")
        self.log.info("UPDATE api key id=%s title=%r", api_key_id, desired.title)
        try:
            record = self._write("PUT", item_path(api_key_id), desired, api_key_id)
        except (HttpError, TransportError) as exc:
            self.log.error("Failed to update Seq API key: %s", exc)
            raise
        base = TrackedState(model=desired, id=api_key_id, token=state.token)
        return apply_response(base, record, keep_token=True)

    def delete(self, api_key_id: str) -> None:
        client = self._require_client()
        if not api_key_id:
            return
        self.log.info("DELETE api key id=%s", api_key_id)
        try:
            client.execute("DELETE", item_path(api_key_id))
        except NotFoundError:
            self.log.info("api key id=%s already absent", api_key_id)
        except (HttpError, TransportError) as exc:
            self.log.error("Failed to delete Seq API key: %s", exc)
            raise

    def import_state(self, api_key_id: str) -> TrackedState:
        """Read a key known only by id. Raises NotFoundError if it does not exist."""
        if not api_key_id:
            raise MissingIdError("import requires an API key id")
        state = self.read(api_key_id, TrackedState(model=DesiredModel(title=""), id=api_key_id))
        if state is None:
            exc = NotFoundError(404, f"API key {api_key_id} does not exist", method="GET", url=item_path(api_key_id))
            self.log.error("Failed to import Seq API key: %s", exc)
            raise exc
        return state
