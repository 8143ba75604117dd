"""Snapshot cloning by JSON round trip.

A cloned snapshot shares no containers with its source, so later mutation of
the caller's objects never reaches a stored entry.  The round trip is lossy
in the usual JSON ways: tuples come back as lists and non-string dict keys
become strings.  Cyclic structures are rejected rather than followed.
"""

from __future__ import annotations

import json
from typing import Any

from statehistory.history.errors import SnapshotError


def clone_snapshot(value: Any, which: str = "snapshot") -> Any:
    """Return a structurally independent copy of *value*.

    Raises:
        SnapshotError: *value* contains a cycle, a non-JSON type, or NaN/Infinity.
    """
    try:
        encoded = json.dumps(value, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as exc:
        raise SnapshotError(which, exc) from exc
    return json.loads(encoded)
