"""Sequential job queue.

Jobs run strictly one at a time, oldest first, on a single worker thread.
Each job is validated and scheduled before any of its nodes run, so a
malformed graph fails its job without side effects.

All mutations happen under ``_lock``; after each one a fresh state snapshot
is published, and ``get_state``/``execution_state`` read only that snapshot.
Events are emitted after the lock is released, so subscribers may call back
into the queue. A subscriber that raises is logged and never stops the
worker, so every claimed job still reaches a terminal status.
"""
from __future__ import annotations
import copy
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .errors import FlowError, InvalidStateError, NodeExecutionError, NotFoundError
from .events import EventBusProtocol, JobCompleted, JobFailed, NullEventBus, QueueUpdated
from .ir import Graph, parse_graph
from .log import bind_context, unbind_context
from .registry import NodeRegistry, default_registry
from .runner import CancelToken, ExecutionStatus, GraphRunner, new_job_id
from .scheduler import schedule_graph
from .validator import validate_graph

logger = structlog.get_logger()


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL = frozenset({JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.CANCELLED})

_RESULT_STATUS = {
    ExecutionStatus.COMPLETED: JobStatus.COMPLETED,
    ExecutionStatus.ERROR: JobStatus.ERROR,
    ExecutionStatus.CANCELLED: JobStatus.CANCELLED,
}


def now_ms() -> int:
    return int(time.time() * 1000)


class Job(BaseModel):
    id: str
    status: JobStatus = JobStatus.PENDING
    graph: Graph
    order: List[str] = Field(default_factory=list)
    progress: Dict[str, Any] = Field(default_factory=dict)
    created_at: int
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    error: Optional[Dict[str, Any]] = None
    outputs: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def summary(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"graph", "outputs"})
        data["node_count"] = len(self.graph.nodes)
        return data


class JobQueue:
    def __init__(self, runner: Optional[GraphRunner] = None,
                 registry: Optional[NodeRegistry] = None,
                 event_bus: Optional[EventBusProtocol] = None,
                 settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.registry = registry or (runner.registry if runner else default_registry())
        self.event_bus = event_bus or (runner.event_bus if runner else NullEventBus())
        self.runner = runner or GraphRunner(self.registry, self.event_bus, self.settings)

        self._jobs: Dict[str, Job] = {}
        self._pending: Deque[str] = deque()
        self._current: Optional[str] = None
        self._cancel_token: Optional[CancelToken] = None

        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._idle = threading.Event()
        self._idle.set()
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self._state: Dict[str, Any] = {}
        self._execution: Optional[Dict[str, Any]] = None
        with self._lock:
            self._publish()

    # -- reads (lock-free) -------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        return copy.deepcopy(self._state)

    def execution_state(self) -> Optional[Dict[str, Any]]:
        """Current node, index and total of the running job; None when idle."""
        state = self._execution
        return dict(state) if state is not None else None

    def get_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}", details={"job_id": job_id})
        return job.model_copy()

    @property
    def is_running(self) -> bool:
        return self._running

    # -- submission and cancellation --------------------------------------

    def enqueue(self, snapshots: Iterable[Union[Graph, Dict[str, Any]]]) -> List[str]:
        """Queue one job per graph; nothing is queued if any graph is malformed."""
        graphs = [parse_graph(s) for s in snapshots]
        created = now_ms()
        job_ids = []
        with self._lock:
            for graph in graphs:
                job = Job(id=new_job_id(), graph=graph, created_at=created)
                self._jobs[job.id] = job
                self._pending.append(job.id)
                job_ids.append(job.id)
            if job_ids:
                self._idle.clear()
                self._wakeup.notify()
            self._publish()
        logger.info("jobs_enqueued", count=len(job_ids), job_ids=job_ids)
        self._emit_state()
        return job_ids

    def cancel(self, job_id: str) -> JobStatus:
        """Drop a pending job, or ask the running one to stop before its next node.

        A cancelled pending job is removed outright and leaves no history.
        Returns the job's status after the call; a running job reports
        ``running`` until the runner has actually stopped.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job not found: {job_id}", details={"job_id": job_id})
            if job.status == JobStatus.PENDING:
                self._pending.remove(job_id)
                del self._jobs[job_id]
                job.status = JobStatus.CANCELLED
                self._publish()
            elif job.status == JobStatus.RUNNING and self._cancel_token is not None:
                self._cancel_token.cancel()
            else:
                raise InvalidStateError(
                    f"Job {job_id} is already {job.status.value}",
                    details={"job_id": job_id, "status": job.status.value},
                )
            status = job.status
        logger.info("job_cancel_requested", job_id=job_id, status=status.value)
        self._emit_state()
        self._mark_idle_if_drained()
        return status

    def clear_pending(self) -> int:
        """Drop every job that has not started; returns how many were dropped."""
        with self._lock:
            cleared = list(self._pending)
            self._pending.clear()
            for job_id in cleared:
                del self._jobs[job_id]
            self._publish()
        logger.info("pending_jobs_cleared", count=len(cleared))
        self._emit_state()
        self._mark_idle_if_drained()
        return len(cleared)

    # -- processing --------------------------------------------------------

    def start(self) -> None:
        if self._running:
            logger.warning("queue_already_running")
            return
        self._running = True
        self._thread = threading.Thread(target=self._worker, name="nodeflow-queue", daemon=True)
        self._thread.start()
        logger.info("queue_started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the worker after its current job; pending jobs stay queued."""
        if not self._running:
            return
        with self._lock:
            self._running = False
            self._wakeup.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("queue_stopped", pending=len(self._pending))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def run_pending(self) -> int:
        """Drain the queue on the calling thread; returns how many jobs ran."""
        if self._running:
            raise InvalidStateError("Queue worker is running; run_pending is for synchronous use")
        count = 0
        while True:
            with self._lock:
                claimed = self._claim_next()
            if claimed is None:
                break
            self._process(*claimed)
            count += 1
        return count

    def _worker(self) -> None:
        while True:
            with self._lock:
                while self._running and not self._pending:
                    self._wakeup.wait()
                if not self._running:
                    return
                claimed = self._claim_next()
            if claimed is None:
                continue
            self._process(*claimed)

    def _claim_next(self) -> Optional[Tuple[str, CancelToken]]:
        if not self._pending:
            return None
        job_id = self._pending.popleft()
        job = self._jobs[job_id]
        job.status = JobStatus.RUNNING
        job.started_at = now_ms()
        token = CancelToken()
        self._current = job_id
        self._cancel_token = token
        self._publish()
        return job_id, token

    def _process(self, job_id: str, token: CancelToken) -> None:
        job = self._jobs[job_id]
        bind_context(job_id=job_id)
        try:
            self._emit_state()
            try:
                validate_graph(job.graph, self.registry, self.settings.input_conflict_policy)
                order = schedule_graph(job.graph)
            except FlowError as e:
                logger.warning("job_rejected", code=e.code.value, error=e.message)
                self._finish(job_id, JobStatus.ERROR, error=e)
                return

            with self._lock:
                job.order = order
                job.progress = {"current_index": 0, "total_nodes": len(order), "percentage": 0.0}
                self._publish()

            result = self.runner.run(job_id, job.graph, order, cancel_token=token,
                                     on_progress=self._on_progress)
            self._finish(job_id, _RESULT_STATUS[result.status], outputs=result.outputs,
                         error=result.error, node_id=result.node_id)
        except Exception as e:
            # Raised by a runner event subscriber or the runner itself, not a node.
            logger.exception("job_crashed")
            self._finish(job_id, JobStatus.ERROR,
                         error=NodeExecutionError(str(e) or type(e).__name__,
                                                  details={"exception": type(e).__name__}))
        finally:
            unbind_context("job_id")

    def _on_progress(self, node_id: str, index: int, total: int) -> None:
        with self._lock:
            job = self._jobs.get(self._current or "")
            if job is None:
                return
            node = job.graph.nodes.get(node_id)
            state = {
                "job_id": job.id,
                "current_node": node_id,
                "node_type": node.type if node else None,
                "current_index": index,
                "total_nodes": total,
            }
            job.progress = {
                "current_node": node_id,
                "current_index": index,
                "total_nodes": total,
                "percentage": round((index - 1) / total * 100, 1) if total else 0.0,
            }
            self._execution = state
            self._publish()

    def _finish(self, job_id: str, status: JobStatus, outputs: Optional[Dict[str, Any]] = None,
                error: Optional[FlowError] = None, node_id: Optional[str] = None) -> None:
        with self._lock:
            job = self._jobs[job_id]
            job.status = status
            job.completed_at = now_ms()
            job.outputs = outputs or {}
            job.error = error.to_dict() if error is not None else None
            if status == JobStatus.COMPLETED:
                job.progress = {**job.progress, "percentage": 100.0}
            if self._current == job_id:
                self._current = None
                self._cancel_token = None
                self._execution = None
            self._prune_history()
            self._publish()

        log = logger.bind(status=status.value, duration_ms=job.completed_at - (job.started_at or job.completed_at))
        if error is not None:
            log.warning("job_finished", node_id=node_id, code=error.code.value)
        else:
            log.info("job_finished")

        self._emit_state()
        if status == JobStatus.COMPLETED:
            self._emit(JobCompleted(job_id=job_id, outputs=job.outputs))
        elif status == JobStatus.ERROR:
            self._emit(JobFailed(job_id=job_id, node_id=node_id, error=job.error or {}))
        self._mark_idle_if_drained()

    # -- snapshot ----------------------------------------------------------

    def _prune_history(self) -> None:
        terminal = sorted(
            (j for j in self._jobs.values() if j.is_terminal),
            key=lambda j: j.completed_at or 0,
        )
        for job in terminal[:max(0, len(terminal) - self.settings.queue_history_limit)]:
            del self._jobs[job.id]

    def _publish(self) -> None:
        # Caller holds _lock.
        running = [self._jobs[self._current]] if self._current else []
        pending = [self._jobs[i] for i in list(self._pending)[:self.settings.queue_pending_display_limit]]
        terminal = sorted(
            (j for j in self._jobs.values() if j.is_terminal),
            key=lambda j: j.completed_at or 0,
        )[-self.settings.queue_history_limit:] if self.settings.queue_history_limit > 0 else []
        self._state = {
            "jobs": [j.summary() for j in running + pending + terminal],
            "is_processing": self._current is not None,
            "current_job_id": self._current,
            "pending_count": len(self._pending),
            "total_count": len(self._jobs),
        }

    def _emit_state(self) -> None:
        self._emit(QueueUpdated(state=self.get_state()))

    def _emit(self, event: Any) -> None:
        # The transition is already committed; a subscriber error must not
        # reach the processing loop.
        try:
            self.event_bus.emit(event)
        except Exception:
            logger.exception("event_handler_failed", event_type=type(event).__name__)

    def _mark_idle_if_drained(self) -> None:
        with self._lock:
            if not self._pending and self._current is None:
                self._idle.set()
