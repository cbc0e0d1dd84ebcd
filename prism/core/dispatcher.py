"""
Dispatcher — routes pattern matching to a pool of isolated execution units.

Matching multi-megabyte pages is CPU-bound; running it on the event loop would
stall every other request. Each unit is a single-worker executor (a separate
process by default, so no memory is shared with the caller or other units).

Protocol:
  1. submit() assigns the job a monotonically increasing correlation id and
     parks a future for it in the pending table
  2. the job goes to the next unit in round-robin order, inputs copied by value
  3. the unit runs the matcher and answers {"id", "findings"}
  4. the answer's id resolves and removes the pending future

Any unit-level trouble (pool creation, crash, timeout) degrades that
submission to "no findings"; the scan itself carries on.

The round-trip timeout runs from the moment a job reaches the head of its
unit's queue, so healthy jobs waiting behind others on a busy unit keep their
findings. A timed-out job is cancelled if the unit has not started it.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from functools import partial
from typing import Any, Callable, Iterable

from prism.config import settings
from prism.core.deduplicator import dedupe
from prism.core.matcher import scan_content
from prism.errors import PoolUnavailableError
from prism.models.rule_models import Finding, Rule, SourceType
from prism.models.scan_models import ScanJob

logger = logging.getLogger("prism.dispatcher")

UnitFactory = Callable[[], Executor]


# ── Unit entry points (run inside the pool unit) ──


def run_scan_job(job: dict[str, Any]) -> dict[str, Any]:
    """Scan one content block; answer with the job's correlation id."""
    findings = scan_content(job["content"], job["rules"], job["source"], job["source_type"])
    return {
        "id": job["correlation_id"],
        "findings": [f.model_dump(mode="json") for f in findings],
    }


def run_batch_job(job: dict[str, Any]) -> dict[str, Any]:
    """Scan several content blocks in one round trip, deduplicated."""
    findings: list[Finding] = []
    for item in job["items"]:
        findings.extend(
            scan_content(item["content"], job["rules"], item["source"], item["source_type"])
        )
    return {
        "id": job["correlation_id"],
        "findings": [f.model_dump(mode="json") for f in dedupe(findings)],
    }


# ── Unit factories ──


def process_unit() -> Executor:
    try:
        return ProcessPoolExecutor(max_workers=1)
    except (OSError, ImportError, NotImplementedError) as e:
        raise PoolUnavailableError(f"Cannot start worker process: {e}") from e


def thread_unit() -> Executor:
    return ThreadPoolExecutor(max_workers=1, thread_name_prefix="prism-unit")


UNIT_FACTORIES: dict[str, UnitFactory] = {
    "process": process_unit,
    "thread": thread_unit,
}


def _snapshot(rule: Rule | dict[str, Any]) -> dict[str, Any]:
    if isinstance(rule, Rule):
        return rule.model_dump()
    return Rule.model_validate(rule).model_dump()


class Dispatcher:
    """
    Fixed pool of N matching units with round-robin routing.

    The pool is created on first use and lives until close().
    """

    def __init__(
        self,
        pool_size: int | None = None,
        pool_kind: str | None = None,
        timeout_seconds: float | None = None,
        unit_factory: UnitFactory | None = None,
    ) -> None:
        self.pool_size = pool_size or settings.pool_size
        kind = pool_kind or settings.pool_kind
        if unit_factory is None:
            if kind not in UNIT_FACTORIES:
                raise ValueError(f"Unknown pool kind: {kind}")
            unit_factory = UNIT_FACTORIES[kind]
        self.pool_kind = kind
        self.unit_factory = unit_factory
        self.timeout_seconds = timeout_seconds or settings.pool_timeout_seconds

        self._units: list[Executor] | None = None
        self._turns: list[Future | None] = []
        self._unavailable = False
        self._next_unit = 0
        self._next_id = 0
        self._pending: dict[int, asyncio.Future[list[Finding]]] = {}

    @property
    def available(self) -> bool:
        return not self._unavailable

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _ensure_pool(self) -> bool:
        if self._units is not None:
            return True
        if self._unavailable:
            return False

        units: list[Executor] = []
        try:
            for _ in range(self.pool_size):
                units.append(self.unit_factory())
        except (PoolUnavailableError, OSError) as e:
            for unit in units:
                unit.shutdown(wait=False)
            self._unavailable = True
            logger.error(f"Matching pool unavailable, scans will return no findings: {e}")
            return False

        self._units = units
        self._turns = [None] * len(units)
        logger.info(f"Started {len(units)} {self.pool_kind} matching units")
        return True

    def _claim_unit(self) -> int:
        if self._units is None:
            raise RuntimeError("Matching pool is not running")
        index = self._next_unit
        self._next_unit = (self._next_unit + 1) % len(self._units)
        return index

    async def submit(
        self,
        content: str,
        rules: Iterable[Rule | dict[str, Any]],
        source: str,
        source_type: SourceType | str,
    ) -> list[Finding]:
        """Scan content in a pool unit. Never raises for unit-level failures."""
        if not content:
            return []

        job = ScanJob(
            correlation_id=self._allocate_id(),
            content=content,
            rules=[_snapshot(r) for r in rules],
            source=source,
            source_type=SourceType(source_type),
        )
        return await self._dispatch(run_scan_job, job.correlation_id, job.model_dump(mode="json"))

    async def submit_batch(
        self,
        items: list[tuple[str, str, SourceType | str]],
        rules: Iterable[Rule | dict[str, Any]],
    ) -> list[Finding]:
        """Scan (content, source, source_type) items in one round trip, deduplicated."""
        items = [item for item in items if item[0]]
        if not items:
            return []

        job_id = self._allocate_id()
        payload = {
            "correlation_id": job_id,
            "rules": [_snapshot(r) for r in rules],
            "items": [
                {"content": c, "source": s, "source_type": SourceType(t).value}
                for c, s, t in items
            ],
        }
        return await self._dispatch(run_batch_job, job_id, payload)

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def _dispatch(
        self,
        entry_point: Callable[[dict[str, Any]], dict[str, Any]],
        job_id: int,
        payload: dict[str, Any],
    ) -> list[Finding]:
        if not self._ensure_pool():
            return []

        loop = asyncio.get_running_loop()
        pending: asyncio.Future[list[Finding]] = loop.create_future()
        self._pending[job_id] = pending

        index = self._claim_unit()
        unit = self._units[index]
        try:
            unit_future = unit.submit(entry_point, payload)
        except (RuntimeError, OSError, BrokenProcessPool) as e:
            self._pending.pop(job_id, None)
            logger.error(f"Job {job_id} could not be submitted: {e}")
            return []

        # A unit runs one job at a time, in submission order. The job's turn
        # begins when the job submitted before it on the same unit has settled.
        previous_turn = self._turns[index]
        turn: Future = Future()
        self._turns[index] = turn

        unit_future.add_done_callback(partial(self._on_unit_done, loop, job_id))

        try:
            if previous_turn is not None and not previous_turn.done():
                await asyncio.wait(
                    [asyncio.wrap_future(previous_turn), pending],
                    return_when=asyncio.FIRST_COMPLETED,
                )
            try:
                return await asyncio.wait_for(pending, timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                self._pending.pop(job_id, None)
                unit_future.cancel()
                logger.warning(f"Job {job_id} timed out after {self.timeout_seconds}s in its unit")
                return []
        finally:
            if not turn.done():
                turn.set_result(None)

    def _on_unit_done(
        self, loop: asyncio.AbstractEventLoop, job_id: int, unit_future: Future
    ) -> None:
        """Runs on the executor's thread; hands the answer back to the event loop."""
        if unit_future.cancelled():
            message, error = {"id": job_id, "findings": []}, None
        elif unit_future.exception() is not None:
            message, error = {"id": job_id, "findings": []}, unit_future.exception()
        else:
            message, error = unit_future.result(), None

        if loop.is_closed():
            logger.debug(f"Job {job_id} finished after its event loop closed")
            return
        loop.call_soon_threadsafe(self._resolve, message, error)

    def _resolve(self, message: dict[str, Any], error: BaseException | None) -> None:
        job_id = message["id"]
        pending = self._pending.pop(job_id, None)
        if pending is None or pending.done():
            return

        if error is not None:
            logger.error(f"Job {job_id} failed in its unit: {type(error).__name__}: {error}")
            pending.set_result([])
            return

        pending.set_result([Finding.model_validate(f) for f in message["findings"]])

    def close(self) -> None:
        """Shut the pool down; unanswered submissions resolve to no findings."""
        for job_id, pending in list(self._pending.items()):
            if not pending.done():
                pending.set_result([])
        self._pending.clear()
        for turn in self._turns:
            if turn is not None and not turn.done():
                turn.set_result(None)
        self._turns = []

        if self._units is not None:
            for unit in self._units:
                unit.shutdown(wait=False, cancel_futures=True)
            logger.info(f"Stopped {len(self._units)} matching units")
        self._units = None
