"""Hash chaining for the audit ledgers.

Each activity-log row and each role-history row stores a SHA-256 hash covering
the previous row's id + timestamp and the current row's id, action tag and a
canonical serialization of its content. A tampered, reordered or deleted row
produces a mismatch detectable by :func:`find_break`.
"""
import hashlib
import json
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# Stands in for the predecessor of the first entry in a ledger
GENESIS_ID = "GENESIS"

Link = Tuple[str, datetime, str, str, str]


def canonical_content(fields: Dict[str, Any]) -> str:
    """Stable JSON for a row's content: sorted keys, compact, non-JSON values as str."""
    return json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)


def compute_hash(
    prev_id: str,
    prev_timestamp: Optional[datetime],
    current_id: str,
    current_action: str,
    content: str = "",
) -> str:
    """Return SHA-256 hex digest linking the current entry to the previous one.

    The input is pipe-delimited so components stay unambiguous even if
    individual values contain special characters. ``content`` is the output of
    :func:`canonical_content` for the current entry.
    """
    prev_ts = prev_timestamp.isoformat() if prev_timestamp is not None else ""
    raw = f"{prev_id}|{prev_ts}|{current_id}|{current_action}|{content}"
    return hashlib.sha256(raw.encode()).hexdigest()


def first_hash(current_id: str, current_action: str, content: str = "") -> str:
    """Hash stored on the very first entry of a ledger."""
    return compute_hash(GENESIS_ID, None, current_id, current_action, content)


def find_break(entries: Sequence[T], link: Callable[[T], Link]) -> Optional[T]:
    """Walk ``entries`` in insertion order and return the first broken entry.

    ``link(entry)`` returns ``(entry_id, timestamp, action_tag, stored_hash,
    content)``. Returns None when the chain is intact (including an empty
    ledger).
    """
    previous: Optional[Link] = None
    for entry in entries:
        entry_id, timestamp, action, stored, content = link(entry)
        if previous is None:
            expected = first_hash(entry_id, action, content)
        else:
            prev_id, prev_ts = previous[0], previous[1]
            expected = compute_hash(prev_id, prev_ts, entry_id, action, content)
        if stored != expected:
            return entry
        previous = (entry_id, timestamp, action, stored, content)
    return None
