import json
import os
import textwrap

import pytest

from seqsync.cli import main
from seqsync.core.state_store import StateStore

API_KEY = "TEST-KEY"


@pytest.fixture()
def workdir(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("SEQSYNC_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "keys.yml").write_text(textwrap.dedent("""
      api_keys:
        ingest-app:
          title: "App ingest"
          permissions: [Ingest]
          applied_properties:
            Application: MyApp
    """), encoding="utf-8")
    return tmp_path


def _run(fake_seq, *args, fmt="table"):
    return main([
        "--server-url", fake_seq.url,
        "--api-key", API_KEY,
        "--timeout-sec", "2",
        "--logs-dir", "logs",
        "--format", fmt,
        *args,
    ])


def test_apply_creates_then_reports_unchanged(fake_seq, workdir, capsys):
    rc = _run(fake_seq, "apply", "--desired", "keys.yml", "--state", "state.json")
    out = capsys.readouterr().out
    assert rc == 0
    assert "CREATED=1" in out
    assert "ingest-app" in out

    store = StateStore("state.json").load()
    assert store.get("ingest-app").id == "apikey-1"

    rc = _run(fake_seq, "apply", "--desired", "keys.yml", "--state", "state.json", fmt="json")
    out = capsys.readouterr().out
    assert rc == 0
    rows = json.loads(out[: out.rindex("]") + 1])
    assert rows[0]["status"] == "UNCHANGED"
    assert (workdir / "logs" / "app.log").exists()


def test_apply_dry_run_needs_no_server(fake_seq, workdir, capsys):
    rc = main(["--logs-dir", "logs", "apply", "--desired", "keys.yml", "--state", "state.json", "--dry-run"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "PLANNED=1" in out
    assert fake_seq.requests == []
    assert not (workdir / "state.json").exists()


def test_apply_reports_errors_with_exit_1(fake_seq, workdir, capsys):
    fake_seq.reject_all_writes = (500, "boom")
    rc = _run(fake_seq, "apply", "--desired", "keys.yml", "--state", "state.json")
    assert rc == 1
    assert "ERROR=1" in capsys.readouterr().out


def test_missing_server_url_is_config_error(workdir, capsys):
    rc = main(["--logs-dir", "logs", "apply", "--desired", "keys.yml"])
    assert rc == 2
    assert "seq.server_url" in capsys.readouterr().err


def test_missing_desired_file_is_validation_error(fake_seq, workdir):
    rc = _run(fake_seq, "apply", "--desired", "missing.yml", "--state", "state.json")
    assert rc == 3


def test_import_then_delete(fake_seq, workdir, capsys):
    fake_seq.seed("apikey-42", Title="legacy", AssignedPermissions=["Read"])

    assert _run(fake_seq, "import", "legacy-reader", "apikey-42", "--state", "state.json") == 0
    assert "IMPORTED" in capsys.readouterr().out
    assert StateStore("state.json").load().get("legacy-reader").id == "apikey-42"

    # Name already tracked.
    assert _run(fake_seq, "import", "legacy-reader", "apikey-42", "--state", "state.json") == 3

    assert _run(fake_seq, "delete", "legacy-reader", "--state", "state.json") == 0
    assert "apikey-42" not in fake_seq.keys
    assert "legacy-reader" not in StateStore("state.json").load()

    capsys.readouterr()
    assert _run(fake_seq, "delete", "legacy-reader", "--state", "state.json") == 0
    assert "UNCHANGED" in capsys.readouterr().out


def test_import_unknown_id_is_network_error(fake_seq, workdir):
    assert _run(fake_seq, "import", "ghost", "apikey-404", "--state", "state.json") == 4
    assert not (workdir / "state.json").exists()


def test_health(fake_seq, workdir, capsys):
    assert _run(fake_seq, "health") == 0
    assert "The Seq node is in service." in capsys.readouterr().out
