"""
Tests for the task registry: creation, completion and the state machine.
"""

import pytest

from goalkeeper.ledger import (
    DeadlineMustBeInFuture,
    DeadlinePassed,
    NotTaskOwner,
    TaskAlreadyCompleted,
    TaskAlreadyPenalized,
    TaskCompleted,
    TaskCreated,
    TaskSummary,
)

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
HOUR = 3600


class TestCreateTask:
    """Tests for create_task."""

    def test_ids_start_at_one_and_increase(self, ledger, staker, clock):
        staker(ALICE, 100)
        staker(BOB, 100)
        first = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        second = ledger.create_task(BOB, "b", clock.now() + HOUR)
        third = ledger.create_task(ALICE, "c", clock.now() + HOUR)

        assert (first, second, third) == (1, 2, 3)
        assert ledger.get_task_ids(ALICE) == (1, 3)
        assert ledger.get_task_ids(BOB) == (2,)

    def test_record_starts_open(self, ledger, staker, clock):
        staker(ALICE, 100)
        deadline = clock.now() + HOUR
        task_id = ledger.create_task(ALICE, "read a book", deadline)

        task = ledger.get_task(task_id)
        assert task.task_id == task_id
        assert task.owner == ALICE
        assert task.description == "read a book"
        assert task.deadline == deadline
        assert task.status == "active"
        assert task.exists
        assert ledger.events[-1] == TaskCreated(
            task_id=task_id, account=ALICE, description="read a book", deadline=deadline
        )

    def test_empty_description_allowed(self, ledger, staker, clock):
        staker(ALICE, 1)
        task_id = ledger.create_task(ALICE, "", clock.now() + 1)
        assert ledger.get_task(task_id).description == ""

    @pytest.mark.parametrize("offset", [0, -1, -HOUR])
    def test_deadline_must_be_in_future(self, ledger, staker, clock, offset):
        staker(ALICE, 100)
        with pytest.raises(DeadlineMustBeInFuture) as exc_info:
            ledger.create_task(ALICE, "late", clock.now() + offset)
        assert exc_info.value.now == clock.now()
        assert ledger.get_task_ids(ALICE) == ()
        assert ledger.state.next_task_id == 1

    def test_rejected_creation_does_not_consume_id(self, ledger, staker, clock):
        staker(ALICE, 100)
        with pytest.raises(DeadlineMustBeInFuture):
            ledger.create_task(ALICE, "late", clock.now())
        assert ledger.create_task(ALICE, "ok", clock.now() + 1) == 1

    def test_type_errors(self, ledger, staker, clock):
        staker(ALICE, 100)
        with pytest.raises(TypeError):
            ledger.create_task(ALICE, None, clock.now() + 1)
        with pytest.raises(TypeError):
            ledger.create_task(ALICE, "x", float(clock.now() + 1))

    def test_task_ids_are_immutable_copies(self, ledger, staker, clock):
        staker(ALICE, 100)
        ledger.create_task(ALICE, "a", clock.now() + 1)
        ids = ledger.get_task_ids(ALICE)
        assert isinstance(ids, tuple)
        assert ledger.state.task_index[ALICE] == [1]


class TestCompleteTask:
    """Tests for complete_task and its error priority."""

    def test_complete_emits_event(self, ledger, staker, clock):
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        ledger.complete_task(ALICE, task_id)
        assert ledger.events[-1] == TaskCompleted(task_id=task_id, account=ALICE)
        assert ledger.get_task(task_id).status == "completed"

    def test_complete_on_deadline_is_allowed(self, ledger, staker, clock):
        staker(ALICE, 100)
        deadline = clock.now() + HOUR
        task_id = ledger.create_task(ALICE, "a", deadline)
        clock.set(deadline)
        ledger.complete_task(ALICE, task_id)
        assert ledger.get_task(task_id).completed

    def test_complete_after_deadline(self, ledger, staker, clock):
        staker(ALICE, 100)
        deadline = clock.now() + HOUR
        task_id = ledger.create_task(ALICE, "a", deadline)
        clock.set(deadline + 1)
        with pytest.raises(DeadlinePassed) as exc_info:
            ledger.complete_task(ALICE, task_id)
        assert exc_info.value.deadline == deadline
        assert ledger.get_task(task_id).completed is False

    def test_complete_twice(self, ledger, staker, clock):
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        ledger.complete_task(ALICE, task_id)
        with pytest.raises(TaskAlreadyCompleted):
            ledger.complete_task(ALICE, task_id)

    def test_non_owner_rejected_before_deadline(self, ledger, staker, clock):
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        with pytest.raises(NotTaskOwner) as exc_info:
            ledger.complete_task(BOB, task_id)
        assert exc_info.value.caller == BOB
        assert ledger.get_task(task_id).completed is False

    def test_ownership_checked_before_deadline(self, ledger, staker, clock):
        """A stranger gets NotTaskOwner even when the deadline has passed."""
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + 1)
        clock.advance(HOUR)
        with pytest.raises(NotTaskOwner):
            ledger.complete_task(BOB, task_id)

    def test_ownership_checked_before_terminal_state(self, ledger, staker, clock):
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        ledger.complete_task(ALICE, task_id)
        with pytest.raises(NotTaskOwner):
            ledger.complete_task(BOB, task_id)

    def test_unknown_task_reports_not_owner(self, ledger):
        with pytest.raises(NotTaskOwner):
            ledger.complete_task(ALICE, 99)

    def test_bool_is_not_a_task_id(self, ledger, staker, clock):
        """True equals 1 as a key; it must not reach task 1."""
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        assert task_id == 1

        with pytest.raises(NotTaskOwner):
            ledger.complete_task(ALICE, True)

        assert ledger.get_task(1).completed is False
        assert ledger.get_task(True).exists is False
        assert not any(isinstance(e, TaskCompleted) for e in ledger.events)

    def test_penalized_flag_blocks_completion(self, ledger, staker, clock):
        """TaskAlreadyPenalized is the last check in the priority order."""
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + HOUR)
        ledger.state.tasks[task_id].penalized = True

        with pytest.raises(TaskAlreadyPenalized):
            ledger.complete_task(ALICE, task_id)

    def test_completed_task_survives_deadline(self, ledger, staker, clock):
        staker(ALICE, 100)
        task_id = ledger.create_task(ALICE, "a", clock.now() + 1)
        ledger.complete_task(ALICE, task_id)
        clock.advance(HOUR)

        ledger.withdraw(ALICE, 0)

        task = ledger.get_task(task_id)
        assert (task.completed, task.penalized) == (True, False)
        assert ledger.get_staked_balance(ALICE) == 100


class TestTaskSummary:
    def test_summary_counts(self, ledger, staker, clock):
        staker(ALICE, 100)
        done = ledger.create_task(ALICE, "done", clock.now() + HOUR)
        ledger.create_task(ALICE, "open", clock.now() + 10 * HOUR)
        late = ledger.create_task(ALICE, "late", clock.now() + 1)
        penalized = ledger.create_task(ALICE, "penalized", clock.now() + 2)
        ledger.complete_task(ALICE, done)
        clock.advance(10)
        ledger.evaluate_task(penalized)

        summary = ledger.get_task_summary(ALICE)

        assert summary == TaskSummary(active=2, completed=1, penalized=1, lapsed=1)
        assert summary.total == 4
        assert ledger.get_task(late).status == "active"

    def test_summary_for_unknown_account(self, ledger):
        assert ledger.get_task_summary(BOB) == TaskSummary()
