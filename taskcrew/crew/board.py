"""TaskBoard: the task tree owned by one Team."""

from typing import Dict, List, Optional

from .tasks import Task, TaskKind, TaskStatus


class TaskBoard:
    """Tasks keyed by id, with parent/child lookup.

    Tasks are never removed. Status changes go through ``Task.transition`` so the
    board itself only indexes; a parent must already be on the board, which
    keeps the tree acyclic.
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._children: Dict[str, List[str]] = {}

    # ── Task management ───────────────────────────────────────

    def add_task(self, task: Task) -> Task:
        if task.id in self._tasks:
            raise ValueError(f"Task already on board: {task.id}")
        if task.parent_id is not None and task.parent_id not in self._tasks:
            raise ValueError(f"Unknown parent task: {task.parent_id}")
        self._tasks[task.id] = task
        self._children.setdefault(task.id, [])
        if task.parent_id is not None:
            self._children[task.parent_id].append(task.id)
        return task

    def add_tasks(self, tasks: List[Task]) -> None:
        for task in tasks:
            self.add_task(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    # ── Queries ───────────────────────────────────────────────

    def children(self, task_id: str) -> List[Task]:
        return [self._tasks[c] for c in self._children.get(task_id, [])]

    def ancestors(self, task_id: str) -> List[Task]:
        """Parent chain from the nearest parent up to the root."""
        chain = []
        task = self._tasks.get(task_id)
        while task is not None and task.parent_id is not None:
            task = self._tasks.get(task.parent_id)
            if task is not None:
                chain.append(task)
        return chain

    def by_status(self, status: TaskStatus) -> List[Task]:
        return [t for t in self._tasks.values() if t.status == status]

    def by_kind(self, kind: TaskKind) -> List[Task]:
        return [t for t in self._tasks.values() if t.kind == kind]

    def counts(self) -> Dict[str, int]:
        """Task count per status value."""
        out = {s.value: 0 for s in TaskStatus}
        for task in self._tasks.values():
            out[task.status.value] += 1
        return out
