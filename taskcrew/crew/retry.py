"""Per-task retry engine: bounded attempts, sufficiency first, then the verdict."""

from typing import Callable, Optional

from ..errors import WorkerError
from ..logger import scoped_logger
from .categories import (
    CATEGORY_RULES,
    TaskCategory,
    check_sufficiency,
    classify_task,
    forced_capability,
)
from .context import Budget
from .tasks import Task, TaskKind, TaskResult, TaskStatus
from .verifier import extract_modified_files, parse_test_results, verify
from .worker import Worker, WorkerReply

CORRECTIVE_INSTRUCTION = (
    "RETRY ATTEMPT {attempt}/{max_attempts}\n"
    "Your previous attempt FAILED because: {reason}\n"
    "You described what to do instead of doing it. Your next message must be a "
    "capability call that performs the work, not prose about it."
)

# Context keys that steer routing and classification; not useful to the worker.
_HIDDEN_CONTEXT_KEYS = ("category", "agent_type")

AttemptHook = Callable[[Task, int, TaskResult], None]


def build_task_prompt(task: Task, category: TaskCategory, attempt: int,
                      previous_reason: Optional[str] = None) -> str:
    parts = [f"## Task: {task.title}", task.description]
    instruction = CATEGORY_RULES[category].instruction
    if instruction:
        parts.append(instruction)

    project_path = task.context.get("project_path")
    if project_path:
        parts.append(f"Working directory: {project_path}")

    extra = [
        f"- {key}: {value}" for key, value in task.context.items()
        if key not in _HIDDEN_CONTEXT_KEYS and key != "project_path"
    ]
    if extra:
        parts.append("## Context\n" + "\n".join(extra))

    if attempt > 1 and previous_reason:
        parts.append(CORRECTIVE_INSTRUCTION.format(
            attempt=attempt, max_attempts=task.max_attempts, reason=previous_reason,
        ))
    return "\n\n".join(p for p in parts if p)


def result_from_reply(task: Task, reply: WorkerReply) -> TaskResult:
    """Turn a sufficient attempt into its TaskResult using the verifier."""
    verdict = verify(reply.output, reply.record)
    files = tuple(extract_modified_files(reply.output))
    if task.kind != TaskKind.VERIFY:
        return TaskResult(
            success=verdict.success, output=reply.output,
            error=None if verdict.success else verdict.reason,
            files_modified=files,
        )

    tests_run, tests_passed, tests_failed = parse_test_results(reply.output)
    success, error = verdict.success, (None if verdict.success else verdict.reason)
    if success and tests_failed:
        success, error = False, f"{tests_failed} tests failed"
    return TaskResult(
        success=success, output=reply.output, error=error, files_modified=files,
        tests_run=tests_run, tests_passed=tests_passed,
    )


class TaskRunner:
    """Drives one worker through a task until success or the attempt ceiling."""

    def __init__(self, worker: Worker, on_attempt: Optional[AttemptHook] = None):
        self.worker = worker
        self.on_attempt = on_attempt

    async def run(self, task: Task, budget: Optional[Budget] = None) -> TaskResult:
        log = scoped_logger(__name__, task.id)
        budget = budget or Budget(limit=task.max_attempts, used=task.attempts)
        category = classify_task(task)
        rule = CATEGORY_RULES[category]
        reason: Optional[str] = None
        last_output: Optional[str] = None

        while not budget.exhausted and task.attempts < task.max_attempts:
            attempt = task.begin_attempt()
            budget = budget.spend()
            prompt = build_task_prompt(task, category, attempt, reason)
            forced = (
                forced_capability(category, self.worker.capability_names)
                if attempt == 1 else None
            )
            log.info("attempt %d/%d (%s)%s", attempt, task.max_attempts, category.value,
                     f", forcing {forced}" if forced else "")

            try:
                reply = await self.worker.invoke(prompt, forced, rule.max_rounds)
            except WorkerError as e:
                reason = f"Worker error: {e}"
                log.warning(reason)
                self._record(task, attempt, TaskResult(False, error=reason))
                continue

            last_output = reply.output
            sufficiency = check_sufficiency(category, reply.record)
            if not sufficiency.sufficient:
                reason = sufficiency.reason
                log.info("attempt %d insufficient: %s", attempt, reason)
                self._record(task, attempt,
                             TaskResult(False, output=reply.output, error=reason),
                             note=f"insufficient: {reason}")
                continue

            result = result_from_reply(task, reply)
            self._record(task, attempt, result)
            if result.success:
                task.transition(TaskStatus.COMPLETED)
                log.info("completed on attempt %d", attempt)
                return result
            reason = result.error
            log.info("attempt %d failed: %s", attempt, reason)

        final = TaskResult(
            success=False,
            output=last_output,
            error=f"Task incomplete after {task.attempts} attempts: {reason or 'no attempts remaining'}",
        )
        task.result = final
        if task.status != TaskStatus.FAILED:
            task.transition(TaskStatus.FAILED)
        log.warning(final.error)
        return final

    def _record(self, task: Task, attempt: int, result: TaskResult, note: str = "") -> None:
        task.record(result, note)
        if self.on_attempt is not None:
            self.on_attempt(task, attempt, result)
