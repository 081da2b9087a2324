"""seqsync: declarative management of Seq API keys."""

__version__ = "0.1.0"
