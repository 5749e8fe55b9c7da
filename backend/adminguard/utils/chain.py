"""Hash chaining for the append-only audit log.

Each audit entry stores a SHA-256 hash covering the previous entry's
log_id + timestamp and the current entry's log_id + action + actor. Editing or
deleting a row breaks every later link, which ``AuditLogger.verify_chain``
detects.
"""
import hashlib
from datetime import datetime
from typing import Optional


def compute_hash(
    prev_log_id: str,
    prev_timestamp: datetime,
    current_log_id: str,
    current_action: str,
    current_actor: Optional[str] = None,
) -> str:
    """Return the SHA-256 hex digest linking the current entry to the previous one.

    Components are pipe-delimited so they stay unambiguous even when a value
    contains special characters.
    """
    raw = f"{prev_log_id}|{prev_timestamp.isoformat()}|{current_log_id}|{current_action}|{current_actor or '-'}"
    return hashlib.sha256(raw.encode()).hexdigest()


def genesis_hash() -> str:
    """Fixed hash stored on the very first audit entry: SHA-256("GENESIS")."""
    return hashlib.sha256(b"GENESIS").hexdigest()
