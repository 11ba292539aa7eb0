"""Concurrency-capped execution of independent async tasks."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from .logging import get_logger

DEFAULT_MAX_CONCURRENCY = 4


class TaskStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Task:
    """Unit of work: ``execute`` is called once when the task is started."""

    id: str
    execute: Callable[[], Awaitable[Any]]
    priority: int = 0
    dependencies: Sequence[str] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskResult:
    task_id: str
    status: TaskStatus
    result: Any = None
    error: Optional[BaseException] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    duration_ms: Optional[float] = None


@dataclass
class ExecutionStats:
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    total_duration_ms: float = 0.0
    average_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    min_duration_ms: float = 0.0


@dataclass
class ExecutionReport:
    """Per-task results keyed by task id, in input order, plus aggregates."""

    results: Dict[str, TaskResult]
    stats: ExecutionStats

    def succeeded(self) -> List[TaskResult]:
        return [item for item in self.results.values() if item.status is TaskStatus.SUCCESS]

    def failed(self) -> List[TaskResult]:
        return [item for item in self.results.values() if item.status is TaskStatus.FAILED]


ProgressCallback = Callable[[int, int], None]
TaskCallback = Callable[[Task], None]
ResultCallback = Callable[[TaskResult], None]


class ParallelExecutor:
    """Runs tasks with at most ``max_concurrency`` in flight.

    A failing task never cancels its siblings. Tasks whose dependencies did
    not succeed, are unknown, or form a cycle are reported as skipped.
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.logger = get_logger("executor")

    async def execute(
        self,
        tasks: Sequence[Task],
        *,
        max_concurrency: int | None = None,
        stop_on_first_error: bool = False,
        on_task_start: TaskCallback | None = None,
        on_task_complete: ResultCallback | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ExecutionReport:
        limit = max_concurrency or self.max_concurrency
        ids = [task.id for task in tasks]
        if len(set(ids)) != len(ids):
            raise ValueError("Task ids must be unique")

        semaphore = asyncio.Semaphore(limit)
        done: Dict[str, asyncio.Event] = {task.id: asyncio.Event() for task in tasks}
        results: Dict[str, TaskResult] = {}
        blocked = self._unresolvable(tasks)
        stop = asyncio.Event()
        total = len(tasks)

        def _settle(result: TaskResult) -> None:
            results[result.task_id] = result
            done[result.task_id].set()
            if on_task_complete is not None:
                on_task_complete(result)
            if on_progress is not None:
                on_progress(len(results), total)

        async def _run(task: Task) -> None:
            if task.id in blocked:
                _settle(TaskResult(task.id, TaskStatus.SKIPPED))
                return
            for dependency in task.dependencies:
                await done[dependency].wait()
            if any(results[dep].status is not TaskStatus.SUCCESS for dep in task.dependencies):
                self.logger.debug("Skipping %s: dependency did not succeed", task.id)
                _settle(TaskResult(task.id, TaskStatus.SKIPPED))
                return
            async with semaphore:
                if stop.is_set():
                    _settle(TaskResult(task.id, TaskStatus.SKIPPED))
                    return
                if on_task_start is not None:
                    on_task_start(task)
                started = time.perf_counter()
                started_at = time.time()
                try:
                    value = await task.execute()
                except Exception as exc:
                    duration = (time.perf_counter() - started) * 1000
                    self.logger.debug("Task %s failed: %s", task.id, exc)
                    if stop_on_first_error:
                        stop.set()
                    _settle(
                        TaskResult(
                            task.id,
                            TaskStatus.FAILED,
                            error=exc,
                            started_at=started_at,
                            finished_at=time.time(),
                            duration_ms=duration,
                        )
                    )
                    return
                duration = (time.perf_counter() - started) * 1000
                _settle(
                    TaskResult(
                        task.id,
                        TaskStatus.SUCCESS,
                        result=value,
                        started_at=started_at,
                        finished_at=time.time(),
                        duration_ms=duration,
                    )
                )

        # Higher priority first; the semaphore admits waiters in FIFO order.
        ordered = sorted(tasks, key=lambda task: -task.priority)
        await asyncio.gather(*(_run(task) for task in ordered))

        keyed = {task.id: results[task.id] for task in tasks}
        stats = self.compute_stats(keyed.values())
        self.logger.debug(
            "Executed %d task(s): %d ok, %d failed, %d skipped",
            stats.total,
            stats.success,
            stats.failed,
            stats.skipped,
        )
        return ExecutionReport(results=keyed, stats=stats)

    @staticmethod
    def compute_stats(results) -> ExecutionStats:
        items = list(results)
        durations = [
            item.duration_ms
            for item in items
            if item.status is not TaskStatus.SKIPPED and item.duration_ms is not None
        ]
        total_duration = sum(durations)
        return ExecutionStats(
            total=len(items),
            success=sum(1 for item in items if item.status is TaskStatus.SUCCESS),
            failed=sum(1 for item in items if item.status is TaskStatus.FAILED),
            skipped=sum(1 for item in items if item.status is TaskStatus.SKIPPED),
            total_duration_ms=total_duration,
            average_duration_ms=total_duration / len(durations) if durations else 0.0,
            max_duration_ms=max(durations) if durations else 0.0,
            min_duration_ms=min(durations) if durations else 0.0,
        )

    @staticmethod
    def _unresolvable(tasks: Sequence[Task]) -> Set[str]:
        """Tasks with unknown dependencies, in a cycle, or downstream of either."""
        graph = {task.id: list(task.dependencies) for task in tasks}
        blocked: Set[str] = set()
        state: Dict[str, int] = {}

        def visit(node: str) -> bool:
            # 1 = in progress, 2 = resolvable; returns False when blocked.
            if node not in graph:
                return False
            if node in blocked:
                return False
            mark = state.get(node)
            if mark == 1:
                return False
            if mark == 2:
                return True
            state[node] = 1
            ok = True
            for dependency in graph[node]:
                if not visit(dependency):
                    ok = False
            if ok:
                state[node] = 2
            else:
                blocked.add(node)
                state[node] = 3
            return ok

        for task_id in graph:
            visit(task_id)
        return blocked


__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "ExecutionReport",
    "ExecutionStats",
    "ParallelExecutor",
    "Task",
    "TaskResult",
    "TaskStatus",
]
