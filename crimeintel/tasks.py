from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
import logging
import uuid

from crimeintel.db_models import utc_now
from crimeintel.orchestrator import TRIGGER_KINDS, ScrapeOrchestrator, dispatch_trigger
from crimeintel.schemas import ScrapeRun


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskHandle:
    task_id: str
    kind: str
    params: dict[str, object]
    accepted_at: datetime
    future: Future = field(repr=False, compare=False)

    def done(self) -> bool:
        return self.future.done()


class TaskQueue:
    """
    Fire-and-forget ingestion triggers.

    submit() acknowledges immediately; the outcome is only durable through the
    scrape_runs audit trail.
    """

    def __init__(self, orchestrator: ScrapeOrchestrator, max_workers: int = 1) -> None:
        self.orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scrape")

    def submit(self, kind: str, **params: object) -> TaskHandle:
        if kind not in TRIGGER_KINDS:
            raise ValueError(f"unknown trigger kind '{kind}', expected one of {sorted(TRIGGER_KINDS)}")

        task_id = str(uuid.uuid4())
        future = self._executor.submit(self._run, task_id, kind, dict(params))
        logger.info("trigger accepted", extra={"task_id": task_id, "kind": kind, "params": params})
        return TaskHandle(task_id=task_id, kind=kind, params=dict(params), accepted_at=utc_now(), future=future)

    def _run(self, task_id: str, kind: str, params: dict[str, object]) -> list[ScrapeRun]:
        try:
            runs = dispatch_trigger(self.orchestrator, kind, params)
        except Exception:
            logger.exception("trigger failed", extra={"task_id": task_id, "kind": kind})
            return []
        logger.info("trigger finished", extra={"task_id": task_id, "kind": kind, "runs": len(runs)})
        return runs

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
