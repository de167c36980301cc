"""
Ledger snapshot persistence.

A snapshot is a JSON document:

    {
      "version": 1,
      "checksum": "<sha256 of the canonical state JSON>",
      "state": { ...LedgerState.to_dict()... }
    }

The checksum covers the canonical (sorted keys, compact) encoding of the
state body, so a hand-edited or truncated file is rejected on load. A body
that checksums correctly but breaks a ledger invariant (reused task ids,
tasks both completed and penalized) is rejected as well.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Union

from .errors import LedgerError
from .invariants import failed_invariants
from .models import LedgerState

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class SnapshotError(Exception):
    """Raised when a snapshot cannot be read back faithfully."""


def _canonical(body: Dict[str, Any]) -> bytes:
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def state_checksum(state: LedgerState) -> str:
    return hashlib.sha256(_canonical(state.to_dict())).hexdigest()


def snapshot_document(state: LedgerState) -> Dict[str, Any]:
    body = state.to_dict()
    return {
        "version": SNAPSHOT_VERSION,
        "checksum": hashlib.sha256(_canonical(body)).hexdigest(),
        "state": body,
    }


def save_snapshot(state: LedgerState, path: Union[str, Path]) -> Path:
    """Write a snapshot atomically (temp file + rename)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = snapshot_document(state)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp_path, path)
    logger.info(
        f"Saved ledger snapshot to {path}",
        extra={"context": {"checksum": document["checksum"], "tasks": len(state.tasks)}},
    )
    return path


def load_snapshot(path: Union[str, Path]) -> LedgerState:
    """Read and verify a snapshot written by save_snapshot."""
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SnapshotError(f"Snapshot not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Snapshot is not valid JSON: {path}") from exc

    if not isinstance(document, dict):
        raise SnapshotError("Snapshot must be a JSON object")
    if document.get("version") != SNAPSHOT_VERSION:
        raise SnapshotError(f"Unsupported snapshot version: {document.get('version')!r}")

    body = document.get("state")
    if not isinstance(body, dict):
        raise SnapshotError("Snapshot has no state body")

    expected = hashlib.sha256(_canonical(body)).hexdigest()
    if document.get("checksum") != expected:
        raise SnapshotError("Snapshot checksum mismatch")

    try:
        state = LedgerState.from_dict(body)
    except (KeyError, TypeError, ValueError, LedgerError) as exc:
        raise SnapshotError(f"Snapshot state is malformed: {exc}") from exc

    failed = failed_invariants(state)
    if failed:
        names = ", ".join(result.name for result in failed)
        raise SnapshotError(f"Snapshot state violates ledger invariants: {names}")

    logger.info(f"Loaded ledger snapshot from {path}", extra={"context": {"checksum": expected}})
    return state
