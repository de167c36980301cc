"""Tests for ledger snapshot persistence."""

import hashlib
import json

import pytest

from goalkeeper.ledger import (
    GoalKeeper,
    InMemoryToken,
    LedgerState,
    ManualClock,
    SnapshotError,
    load_snapshot,
    save_snapshot,
)
from goalkeeper.ledger.storage import SNAPSHOT_VERSION, state_checksum

OWNER = "0x" + "f" * 40
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40


@pytest.fixture
def populated(ledger, staker, clock):
    """A ledger with stakes, one completed, one penalized and one open task."""
    staker(ALICE, 100)
    staker(BOB, 50)
    done = ledger.create_task(ALICE, "done", clock.now() + 100)
    lapsed = ledger.create_task(ALICE, "lapsed", clock.now() + 1)
    ledger.create_task(BOB, "open", clock.now() + 10_000)
    ledger.complete_task(ALICE, done)
    clock.advance(10)
    ledger.evaluate_task(lapsed)
    return ledger


def test_round_trip(populated, tmp_path):
    path = populated.save_snapshot(tmp_path / "ledger.json")

    restored = load_snapshot(path)

    assert restored == populated.state
    assert restored is not populated.state
    assert state_checksum(restored) == state_checksum(populated.state)


def test_document_layout(populated, tmp_path):
    path = save_snapshot(populated.state, tmp_path / "ledger.json")
    document = json.loads(path.read_text())

    assert document["version"] == SNAPSHOT_VERSION
    assert document["checksum"] == state_checksum(populated.state)
    assert document["state"]["penalty_pool"] == 10
    assert not (tmp_path / "ledger.json.tmp").exists()


def test_creates_parent_directories(tmp_path):
    path = save_snapshot(LedgerState(owner=OWNER), tmp_path / "a" / "b" / "ledger.json")
    assert path.exists()


def test_tampered_snapshot_rejected(populated, tmp_path):
    path = populated.save_snapshot(tmp_path / "ledger.json")
    document = json.loads(path.read_text())
    document["state"]["penalty_pool"] = 0
    path.write_text(json.dumps(document))

    with pytest.raises(SnapshotError, match="checksum"):
        load_snapshot(path)


def test_version_mismatch(populated, tmp_path):
    path = populated.save_snapshot(tmp_path / "ledger.json")
    document = json.loads(path.read_text())
    document["version"] = SNAPSHOT_VERSION + 1
    path.write_text(json.dumps(document))

    with pytest.raises(SnapshotError, match="version"):
        load_snapshot(path)


def test_missing_file(tmp_path):
    with pytest.raises(SnapshotError, match="not found"):
        load_snapshot(tmp_path / "absent.json")


def test_invalid_json(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text("{not json")
    with pytest.raises(SnapshotError):
        load_snapshot(path)


def _write_checksummed(path, body):
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
    path.write_text(json.dumps({
        "version": SNAPSHOT_VERSION,
        "checksum": hashlib.sha256(canonical).hexdigest(),
        "state": body,
    }))
    return path


def _task(task_id, owner=ALICE, **flags):
    return {"task_id": task_id, "owner": owner, "description": "t", "deadline": 10, **flags}


def test_checksummed_but_malformed_state(tmp_path):
    """A well-formed checksum over a body that is not a ledger state."""
    path = _write_checksummed(tmp_path / "ledger.json", {"owner": OWNER, "balances": {ALICE: -5}})

    with pytest.raises(SnapshotError, match="malformed"):
        load_snapshot(path)


@pytest.mark.parametrize(
    "body,broken",
    [
        (
            {
                "owner": OWNER,
                "tasks": [_task(1, completed=True, penalized=True)],
                "task_index": {ALICE: [1]},
                "next_task_id": 2,
            },
            "terminal_flags",
        ),
        (
            {"owner": OWNER, "tasks": [_task(1)], "task_index": {ALICE: [1]}, "next_task_id": 1},
            "index_consistency",
        ),
        (
            {"owner": OWNER, "tasks": [_task(1)], "task_index": {}, "next_task_id": 2},
            "index_consistency",
        ),
    ],
)
def test_checksummed_state_breaking_invariants_rejected(tmp_path, body, broken):
    path = _write_checksummed(tmp_path / "ledger.json", body)

    with pytest.raises(SnapshotError, match=broken):
        load_snapshot(path)


def test_inconsistent_snapshot_cannot_overwrite_tasks(tmp_path, token, clock):
    """A stale id counter must not let a resumed ledger reuse an allocated id."""
    body = {
        "owner": OWNER,
        "balances": {ALICE: 0},
        "tasks": [_task(1, completed=True)],
        "task_index": {ALICE: [1]},
        "next_task_id": 1,
    }
    path = _write_checksummed(tmp_path / "ledger.json", body)

    with pytest.raises(SnapshotError):
        GoalKeeper.from_snapshot(path, token, clock=clock)


def test_resumed_ledger_continues(populated, tmp_path, token, clock):
    path = populated.save_snapshot(tmp_path / "ledger.json")

    resumed = GoalKeeper.from_snapshot(path, token, clock=clock)
    next_id = resumed.create_task(BOB, "after restart", clock.now() + 100)

    assert next_id == 4
    assert resumed.get_owner() == OWNER
    assert resumed.get_staked_balance(ALICE) == 90
    assert resumed.get_task(1).status == "completed"
    assert resumed.get_task(2).status == "penalized"
    assert resumed.get_task_ids(BOB) == (3, 4)
    assert all(result.ok for result in resumed.check_invariants())


def test_resumed_ledger_rejects_other_owner(populated, tmp_path):
    path = populated.save_snapshot(tmp_path / "ledger.json")
    with pytest.raises(ValueError):
        GoalKeeper.from_snapshot(path, InMemoryToken(), owner=ALICE, clock=ManualClock())
