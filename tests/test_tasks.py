"""Tests for task records, budgets, the goal context and the task board."""

import pytest

from taskcrew.crew.board import TaskBoard
from taskcrew.crew.context import Budget, GoalContext, extract_project_path
from taskcrew.crew.tasks import (
    ROLE_IMPLEMENT,
    ROLE_VERIFY,
    EscalationRecord,
    InvocationRecord,
    PlanBreakdown,
    TaskKind,
    TaskResult,
    TaskStatus,
    create_task,
    generate_task_id,
)
from taskcrew.errors import InvalidTransitionError


def _task(kind=TaskKind.IMPLEMENT, title="Do it", max_attempts=3, parent_id=None):
    return create_task(kind, title, "desc", "pm", max_attempts=max_attempts, parent_id=parent_id)


class TestTaskLifecycle:

    def test_new_task_is_pending(self):
        task = _task()
        assert task.status == TaskStatus.PENDING
        assert task.attempts == 0
        assert not task.is_terminal()

    def test_ids_are_unique(self):
        assert len({generate_task_id() for _ in range(200)}) == 200

    def test_max_attempts_floor_is_one(self):
        assert _task(max_attempts=0).max_attempts == 1

    def test_begin_attempt_counts_and_marks_in_progress(self):
        task = _task()
        assert task.begin_attempt() == 1
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.begin_attempt() == 2

    def test_attempts_never_exceed_ceiling(self):
        task = _task(max_attempts=2)
        task.begin_attempt()
        task.begin_attempt()
        with pytest.raises(InvalidTransitionError):
            task.begin_attempt()
        assert task.attempts == 2

    def test_completed_is_terminal_and_final(self):
        task = _task()
        task.begin_attempt()
        task.transition(TaskStatus.COMPLETED)
        assert task.is_terminal()
        with pytest.raises(InvalidTransitionError):
            task.transition(TaskStatus.IN_PROGRESS)

    def test_failed_with_attempts_left_can_retry(self):
        task = _task(max_attempts=2)
        task.begin_attempt()
        task.transition(TaskStatus.FAILED)
        assert task.can_retry()
        assert not task.is_terminal()
        task.transition(TaskStatus.IN_PROGRESS)

    def test_failed_at_ceiling_is_terminal(self):
        task = _task(max_attempts=1)
        task.begin_attempt()
        task.transition(TaskStatus.FAILED)
        assert task.is_terminal()
        with pytest.raises(InvalidTransitionError):
            task.transition(TaskStatus.IN_PROGRESS)

    def test_blocked_may_resume(self):
        task = _task()
        task.transition(TaskStatus.BLOCKED)
        task.transition(TaskStatus.IN_PROGRESS)
        assert task.status == TaskStatus.IN_PROGRESS

    def test_completed_cannot_go_back_to_pending(self):
        task = _task()
        task.transition(TaskStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            task.transition(TaskStatus.PENDING)

    def test_record_appends_history(self):
        task = _task()
        task.begin_attempt()
        task.record(TaskResult(False, error="boom"))
        task.record(TaskResult(True, output="wrote to a.py"), note="done")
        assert task.history[0] == "attempt 1/3 fail: boom"
        assert task.history[1] == "attempt 1/3 ok: done"
        assert task.result.success


class TestTaskResult:

    def test_reason_prefers_error(self):
        assert TaskResult(False, output="x", error="bad").reason == "bad"

    def test_reason_falls_back_to_output(self):
        assert TaskResult(True, output="  all good  ").reason == "all good"

    def test_reason_when_empty(self):
        assert TaskResult(False).reason == "no output"

    def test_is_immutable(self):
        result = TaskResult(True)
        with pytest.raises(AttributeError):
            result.success = False


class TestPlanBreakdown:

    def test_default_order_is_implementation_then_verification(self):
        a, b = _task(title="a"), _task(title="b")
        q = _task(TaskKind.VERIFY, title="q")
        plan = PlanBreakdown([a, b], [q])
        assert plan.execution_order == [
            (ROLE_IMPLEMENT, a.id), (ROLE_IMPLEMENT, b.id), (ROLE_VERIFY, q.id),
        ]

    def test_unknown_ids_are_dropped_from_order(self):
        a = _task()
        plan = PlanBreakdown([a], [], [(ROLE_IMPLEMENT, "missing"), (ROLE_IMPLEMENT, a.id)])
        assert plan.execution_order == [(ROLE_IMPLEMENT, a.id)]

    def test_order_of_only_unknown_ids_falls_back_to_default(self):
        a = _task()
        plan = PlanBreakdown([a], [], [(ROLE_IMPLEMENT, "missing")])
        assert plan.execution_order == [(ROLE_IMPLEMENT, a.id)]

    def test_get(self):
        a = _task()
        plan = PlanBreakdown([a])
        assert plan.get(a.id) is a
        assert plan.get("nope") is None


class TestEscalationRecord:

    def test_wrap_keeps_innermost_reason(self):
        inner = EscalationRecord("task_1", "Max iterations (5) reached", ["attempt 1 fail"])
        outer = inner.wrap("company_1", "acme/engineering")
        assert outer.source_id == "company_1"
        assert outer.reason == "Max iterations (5) reached"
        assert outer.history == ["attempt 1 fail", "acme/engineering"]
        assert inner.history == ["attempt 1 fail"]


class TestInvocationRecord:

    def test_counts(self):
        record = InvocationRecord()
        record.record("write_file", True)
        record.record("write_file", False)
        record.record("read_file", True)
        assert record.total == 3
        assert record.successful == 2
        assert record.failed == 1
        assert record.count("write_file") == 2
        assert record.count("write_file", "read_file", "other") == 3


class TestBudget:

    def test_spend_returns_new_budget(self):
        budget = Budget(limit=2)
        spent = budget.spend()
        assert budget.used == 0
        assert spent.used == 1
        assert spent.remaining == 1

    def test_exhausted(self):
        budget = Budget(limit=1).spend()
        assert budget.exhausted
        with pytest.raises(ValueError):
            budget.spend()


class TestGoalContext:

    @pytest.mark.parametrize("output,expected", [
        ("Project created at: ./todo-app", "./todo-app"),
        ("project created at `todo-app`.", "todo-app"),
        ("Project generated at demo/", "demo"),
        ("nothing here", None),
    ])
    def test_extract_project_path(self, output, expected):
        assert extract_project_path(output) == expected

    def test_learns_once_and_injects(self):
        ctx = GoalContext()
        assert ctx.learn_from_output("Project created at: todo-app") == "todo-app"
        assert ctx.learn_from_output("Project created at: todo-app") is None
        task = _task()
        ctx.apply_to(task)
        assert task.context["project_path"] == "todo-app"

    def test_does_not_override_explicit_context(self):
        ctx = GoalContext({"project_path": "a"})
        task = _task()
        task.context["project_path"] = "b"
        ctx.apply_to(task)
        assert task.context["project_path"] == "b"


class TestTaskBoard:

    def test_add_and_get(self):
        board = TaskBoard()
        task = board.add_task(_task())
        assert board.get_task(task.id) is task
        assert len(board) == 1

    def test_duplicate_rejected(self):
        board = TaskBoard()
        task = board.add_task(_task())
        with pytest.raises(ValueError):
            board.add_task(task)

    def test_parent_must_exist(self):
        board = TaskBoard()
        with pytest.raises(ValueError):
            board.add_task(_task(parent_id="task_missing"))

    def test_tree_queries(self):
        board = TaskBoard()
        root = board.add_task(_task(TaskKind.PLAN, title="goal"))
        child = board.add_task(_task(parent_id=root.id))
        grandchild = board.add_task(_task(TaskKind.FIX, parent_id=child.id))
        assert board.children(root.id) == [child]
        assert board.ancestors(grandchild.id) == [child, root]
        assert board.by_kind(TaskKind.FIX) == [grandchild]

    def test_counts(self):
        board = TaskBoard()
        board.add_task(_task())
        done = board.add_task(_task())
        done.transition(TaskStatus.COMPLETED)
        counts = board.counts()
        assert counts["pending"] == 1
        assert counts["completed"] == 1
        assert counts["failed"] == 0
