import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest

API_KEY = "TEST-KEY"


class FakeSeq:
    """In-memory stand-in for the Seq /api/apikeys and /health endpoints."""

    def __init__(self):
        self.keys = {}
        self.requests = []
        self.legacy_only = False      # reject AssignedPermissions (older Seq)
        self.reject_all_writes = None  # (status, text) returned for every POST/PUT
        self.return_token_on_write = True
        self.omit_settings = False
        self.empty_create_response = False  # 201 with no body
        self.next_id = 1
        self.lock = threading.Lock()

    # ---------- helpers used by tests ----------

    def calls(self, method, path=None):
        return [r for r in self.requests if r["method"] == method and (path is None or r["path"] == path)]

    def seed(self, key_id, **fields):
        rec = {
            "Id": key_id,
            "Title": fields.pop("Title", key_id),
            "Token": fields.pop("Token", f"tok-{key_id}"),
            "OwnerId": fields.pop("OwnerId", "user-admin"),
            "AssignedPermissions": fields.pop("AssignedPermissions", ["Ingest"]),
            "InputSettings": fields.pop("InputSettings", None),
        }
        rec.update(fields)
        self.keys[key_id] = rec
        return rec

    # ---------- request handling ----------

    def _public(self, rec, with_token):
        out = dict(rec)
        if not with_token:
            out["Token"] = None
        if self.omit_settings:
            out.pop("InputSettings", None)
        elif out.get("InputSettings") is None:
            out["InputSettings"] = {"AppliedProperties": [], "Filter": None, "MinimumLevel": None}
        if self.legacy_only:
            out["Permissions"] = out.pop("AssignedPermissions", None)
        return out

    def _check_write(self, body):
        if self.reject_all_writes:
            return self.reject_all_writes
        if self.legacy_only and "AssignedPermissions" in body:
            return 400, "The request body contains an unrecognized member `AssignedPermissions`."
        return None

    def handle(self, method, path, headers, body):
        self.requests.append({"method": method, "path": path, "headers": dict(headers), "body": body})

        if path == "/health" and method == "GET":
            return 200, {"status": "The Seq node is in service."}

        if headers.get("X-Seq-ApiKey") != API_KEY:
            return 401, "Unauthorized"

        if path == "/api/apikeys":
            if method == "GET":
                return 200, [self._public(r, False) for r in self.keys.values()]
            if method == "POST":
                rejected = self._check_write(body)
                if rejected:
                    return rejected
                with self.lock:
                    key_id = f"apikey-{self.next_id}"
                    self.next_id += 1
                rec = {
                    "Id": key_id,
                    "Title": body.get("Title"),
                    "Token": f"secret-{key_id}",
                    "OwnerId": body.get("OwnerId") or "user-admin",
                    "AssignedPermissions": body.get("AssignedPermissions", body.get("Permissions", [])),
                    "InputSettings": body.get("InputSettings"),
                }
                self.keys[key_id] = rec
                if self.empty_create_response:
                    return 201, None
                return 201, self._public(rec, self.return_token_on_write)

        if path.startswith("/api/apikeys/"):
            key_id = path.rsplit("/", 1)[-1]
            rec = self.keys.get(key_id)
            if rec is None:
                return 404, ""
            if method == "GET":
                return 200, self._public(rec, False)
            if method == "PUT":
                if body.get("Id") != key_id:
                    return 400, "Id in body does not match the URL"
                rejected = self._check_write(body)
                if rejected:
                    return rejected
                rec["Title"] = body.get("Title")
                if body.get("OwnerId"):
                    rec["OwnerId"] = body["OwnerId"]
                if "AssignedPermissions" in body or "Permissions" in body:
                    rec["AssignedPermissions"] = body.get("AssignedPermissions", body.get("Permissions"))
                rec["InputSettings"] = body.get("InputSettings")
                return 200, self._public(rec, False)
            if method == "DELETE":
                del self.keys[key_id]
                return 204, None

        return 404, "Not found"


def _make_handler(fake):
    class _Handler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def _dispatch(self, method):
            length = int(self.headers.get("Content-Length", "0") or 0)
            raw = self.rfile.read(length) if length else b""
            body = json.loads(raw.decode("utf-8")) if raw else None
            status, payload = fake.handle(method, urlparse(self.path).path, self.headers, body)
            if payload is None:
                data = b""
            elif isinstance(payload, str):
                data = payload.encode("utf-8")
            else:
                data = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            if data and not isinstance(payload, str):
                self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            if data:
                self.wfile.write(data)

        def do_GET(self):  # noqa: N802
            self._dispatch("GET")

        def do_POST(self):  # noqa: N802
            self._dispatch("POST")

        def do_PUT(self):  # noqa: N802
            self._dispatch("PUT")

        def do_DELETE(self):  # noqa: N802
            self._dispatch("DELETE")

        def log_message(self, fmt, *args):  # silence test server logs
            return

    return _Handler


@pytest.fixture()
def fake_seq():
    fake = FakeSeq()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(fake))
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    fake.url = f"http://{host}:{port}"
    yield fake
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)


@pytest.fixture()
def client(fake_seq):
    from seqsync.core.seq_client import SeqClient

    c = SeqClient(fake_seq.url, api_key=API_KEY, timeout_sec=2)
    yield c
    c.close()
