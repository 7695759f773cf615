"""codexec — run untrusted scripts against a read-only dataset in a locked-down container."""

__version__ = "0.1.0"
