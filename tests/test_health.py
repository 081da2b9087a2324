import pytest

from seqsync.core.api_keys import NotConfiguredError
from seqsync.core.health import read_health
from seqsync.core.seq_client import SeqClient


def test_health_status(fake_seq, client):
    assert read_health(client) == "The Seq node is in service."
    assert fake_seq.calls("GET", "/health")[0]["headers"]["X-Seq-ApiKey"] == "TEST-KEY"


def test_health_works_without_credential(fake_seq):
    anon = SeqClient(fake_seq.url, timeout_sec=2)
    assert read_health(anon) == "The Seq node is in service."
    assert "X-Seq-ApiKey" not in fake_seq.calls("GET", "/health")[0]["headers"]


def test_health_requires_client():
    with pytest.raises(NotConfiguredError):
        read_health(None)
