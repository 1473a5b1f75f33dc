"""Offer scheduler: time-triggered discount activation and deactivation.

Per ``(offer, job name)`` key there are two states:

* Pending: a JobRecord is persisted and a timer is armed in memory.
* Absent: neither exists.

``schedule_start`` / ``schedule_end`` move a key to Pending; the timer firing
(or ``cancel``) moves it back to Absent. Timers live in process memory only,
so ``reconcile_on_startup`` rebuilds them from the persisted records: records
whose deadline passed while the process was down are applied immediately,
the rest are re-armed against their existing record (no duplicate insert).

Fired timers never raise into the worker. Failures are captured as
``FireResult`` entries, re-armed with exponential backoff, and dead-lettered
once ``FIRE_RETRY_POLICY['max_attempts']`` is exhausted. A dead-lettered
record is left in place for the next startup reconciliation.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from storefront.config import FIRE_RETRY_POLICY, OFFER_SCHEDULE_SETTINGS
from storefront.database import SessionLocal
from storefront.jobs.job_store import JobRecord, JobRecordStore
from storefront.jobs.offer_job import OfferPhaseJob, timer_key
from storefront.jobs.timers import DeadlineQueue
from storefront.models.db import Offer
from storefront.models.db.enums import FireOutcome, OfferPhase
from storefront.services.product_state import apply_offer_end, apply_offer_start
from storefront.utils import date_difference, ensure_utc, get_logger, log_business_event, utc_now
from storefront.utils.backoff import BackoffPolicy

logger = get_logger(__name__)


@dataclass(slots=True)
class FireResult:
    offer_id: int
    job_name: str
    job_record_id: Optional[str]
    attempt: int
    ok: bool
    outcome: FireOutcome
    fired_at: datetime
    error: Optional[str] = None
    error_type: Optional[str] = None
    report: Optional[dict[str, Any]] = None


@dataclass
class ReconcileSummary:
    applied: int = 0
    rearmed: int = 0
    orphaned: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.applied + self.rearmed + self.orphaned + self.duplicates + self.skipped + self.failed

    def as_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "rearmed": self.rearmed,
            "orphaned": self.orphaned,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class OfferScheduler:
    def __init__(
        self,
        store: JobRecordStore,
        session_factory: Callable[[], Session] | None = None,
        *,
        queue: DeadlineQueue | None = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Mapping[str, Any] | None = None,
        max_attempts: int | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        cfg = settings or OFFER_SCHEDULE_SETTINGS
        self.store = store
        self.start_job_name = str(cfg["start_job_name"])
        self.end_job_name = str(cfg["end_job_name"])
        self.collection_name = str(cfg["collection_name"])
        self._session_factory = session_factory or SessionLocal
        self._clock = clock
        self.queue = queue or DeadlineQueue(clock=lambda: self.now().timestamp())
        self._max_attempts = int(max_attempts if max_attempts is not None else FIRE_RETRY_POLICY["max_attempts"])
        self._backoff = backoff or BackoffPolicy.from_settings()
        self._history: deque[FireResult] = deque(maxlen=int(cfg.get("fire_history_size", 200)))
        self._dead_letters: deque[dict[str, Any]] = deque(maxlen=int(cfg.get("dead_letter_size", 200)))
        self._history_lock = threading.Lock()
        self.reconciled = False

    # ----------------------------- naming ----------------------------- #
    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def job_name_for(self, phase: OfferPhase) -> str:
        return self.start_job_name if phase is OfferPhase.START else self.end_job_name

    def phase_for(self, job_name: str) -> Optional[OfferPhase]:
        if job_name == self.start_job_name:
            return OfferPhase.START
        if job_name == self.end_job_name:
            return OfferPhase.END
        return None

    # ----------------------------- scheduling ----------------------------- #
    def schedule_start(
        self,
        is_new: bool,
        offer_id: int,
        deadline: datetime,
        products: Iterable[Mapping[str, Any]],
        job_record_id: Optional[str] = None,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> str:
        """Arm the start-of-offer timer; returns the backing JobRecord id."""
        return self._schedule(OfferPhase.START, is_new, offer_id, deadline, products, job_record_id, start, end)

    def schedule_end(
        self,
        is_new: bool,
        offer_id: int,
        deadline: datetime,
        products: Iterable[Mapping[str, Any]],
        job_record_id: Optional[str] = None,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> str:
        """Arm the end-of-offer timer. Its fire also deletes the offer."""
        return self._schedule(OfferPhase.END, is_new, offer_id, deadline, products, job_record_id, start, end)

    def _schedule(
        self,
        phase: OfferPhase,
        is_new: bool,
        offer_id: int,
        deadline: datetime,
        products: Iterable[Mapping[str, Any]],
        job_record_id: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> str:
        name = self.job_name_for(phase)
        if is_new:
            # At most one record per (name, target)
            residual = self.store.delete_by_target(name, str(offer_id), self.collection_name)
            if residual:
                logger.warning("Removed residual job records before scheduling", offer_id=offer_id, job_name=name, removed=residual)
            record = self.store.insert(name, str(offer_id), self.collection_name)
            job_record_id = record.id
        elif job_record_id is None:
            raise ValueError("job_record_id is required when re-arming an existing schedule")

        deadline = ensure_utc(deadline)
        job = OfferPhaseJob(
            offer_id=int(offer_id),
            phase=phase,
            job_name=name,
            deadline=deadline,
            job_record_id=str(job_record_id),
            products=[dict(p) for p in products],
            window_start=ensure_utc(start) if start else None,
            window_end=ensure_utc(end) if end else None,
        )
        self.queue.arm(job.key(), job, deadline.timestamp())
        logger.info(
            "Offer timer armed",
            offer_id=offer_id,
            job_name=name,
            deadline=deadline.isoformat(),
            job_record_id=job.job_record_id,
            is_new=is_new,
        )
        return str(job_record_id)

    def cancel(self, name: str, offer_id: Optional[int] = None) -> int:
        """Cancel timers armed under ``name`` and delete their records.

        With ``offer_id`` only that offer's schedule is touched; without it
        every offer's ``name`` schedule is cancelled. Returns the number of
        in-memory timers cancelled. Idempotent.
        """
        if offer_id is not None:
            cancelled = 1 if self.queue.cancel(timer_key(offer_id, name)) else 0
            deleted = self.store.delete_by_target(name, str(offer_id), self.collection_name)
        else:
            cancelled = self.queue.cancel_matching(lambda key: key[1] == name)
            deleted = self.store.delete_by_name_and_collection(name, self.collection_name)
        logger.info("Offer schedule cancelled", job_name=name, offer_id=offer_id, timers=cancelled, records=deleted)
        return cancelled

    def cancel_offer(self, offer_id: int) -> int:
        """Cancel both phases of one offer."""
        return self.cancel(self.start_job_name, offer_id) + self.cancel(self.end_job_name, offer_id)

    # ----------------------------- firing ----------------------------- #
    def execute(self, job: OfferPhaseJob) -> FireResult:
        """Run one fired timer: mutate products, (end) delete the offer, drop the record."""
        fired_at = self.now()
        logger.info("Offer timer fired", offer_id=job.offer_id, job_name=job.job_name, attempt=job.attempt)
        session = self._session_factory()
        try:
            if job.phase is OfferPhase.START:
                report = apply_offer_start(session, job.products, start=job.window_start, end=job.window_end)
            else:
                report = apply_offer_end(session, job.products)
                session.execute(delete(Offer).where(Offer.id == job.offer_id))
                session.commit()
            if job.job_record_id is not None:
                self.store.delete_by_id(job.job_record_id)
            result = FireResult(
                offer_id=job.offer_id,
                job_name=job.job_name,
                job_record_id=job.job_record_id,
                attempt=job.attempt,
                ok=True,
                outcome=FireOutcome.APPLIED,
                fired_at=fired_at,
                report=report.as_dict(),
            )
            log_business_event(
                "offer_timer_fired",
                {"phase": job.phase.value, "job_name": job.job_name, "products_applied": len(report.applied)},
                offer_id=job.offer_id,
            )
        except Exception as e:
            session.rollback()
            result = self._handle_failure(job, e, fired_at)
        finally:
            session.close()
        self._record(result)
        return result

    def _handle_failure(self, job: OfferPhaseJob, exc: Exception, fired_at: datetime) -> FireResult:
        logger.error(
            "Offer timer fire failed",
            offer_id=job.offer_id,
            job_name=job.job_name,
            attempt=job.attempt,
            error=str(exc),
            exc_info=True,
        )
        outcome = FireOutcome.DEAD_LETTERED
        if self.queue.is_armed(job.key()):
            # A newer schedule owns the key; it will do the work
            outcome = FireOutcome.SUPERSEDED
        elif job.attempt < self._max_attempts:
            retry = replace(job, attempt=job.attempt + 1)
            delay = self._backoff.delay(job.attempt)
            try:
                self.queue.arm(retry.key(), retry, (fired_at + timedelta(seconds=delay)).timestamp())
                outcome = FireOutcome.RETRY_SCHEDULED
                logger.info("Offer timer retry armed", offer_id=job.offer_id, job_name=job.job_name, attempt=retry.attempt, delay_seconds=round(delay, 2))
            except (RuntimeError, OverflowError) as arm_error:
                logger.error("Offer timer retry could not be armed", offer_id=job.offer_id, error=str(arm_error))

        if outcome is FireOutcome.DEAD_LETTERED:
            self._dead_letter({
                "offer_id": job.offer_id,
                "job_name": job.job_name,
                "job_record_id": job.job_record_id,
                "attempt": job.attempt,
                "error": str(exc),
                "type": type(exc).__name__,
            })
            logger.error(
                "Offer timer dead-lettered; job record kept for startup reconciliation",
                offer_id=job.offer_id,
                job_name=job.job_name,
                job_record_id=job.job_record_id,
            )
        return FireResult(
            offer_id=job.offer_id,
            job_name=job.job_name,
            job_record_id=job.job_record_id,
            attempt=job.attempt,
            ok=False,
            outcome=outcome,
            fired_at=fired_at,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    def run_due(self, now: Optional[datetime] = None) -> list[FireResult]:
        """Fire every timer due at ``now`` synchronously."""
        moment = ensure_utc(now) if now is not None else self.now()
        return [self.execute(job) for job in self.queue.pop_due(moment.timestamp())]

    # ----------------------------- reconciliation ----------------------------- #
    def reconcile_on_startup(self, now: Optional[datetime] = None) -> ReconcileSummary:
        """Rebuild timers from persisted job records. Runs once before serving."""
        moment = ensure_utc(now) if now is not None else self.now()
        summary = ReconcileSummary()
        try:
            records = self.store.list_all()
        except Exception as e:
            logger.error("Could not list job records for reconciliation", error=str(e), exc_info=True)
            summary.failed += 1
            summary.errors.append({"record_id": None, "error": str(e)})
            return summary

        # Start phases first so a fully elapsed offer applies before it clears
        records.sort(key=lambda r: 0 if r.name == self.start_job_name else 1)
        seen: set[tuple[str, str]] = set()
        for record in records:
            key = timer_key(record.target_id, record.name)
            try:
                if key in seen:
                    self.store.delete_by_id(record.id)
                    summary.duplicates += 1
                    continue
                seen.add(key)
                outcome = self._reconcile_record(record, moment)
                setattr(summary, outcome, getattr(summary, outcome) + 1)
            except Exception as e:
                summary.failed += 1
                summary.errors.append({"record_id": record.id, "error": str(e)})
                logger.error("Job record reconciliation failed", record_id=record.id, job_name=record.name, error=str(e), exc_info=True)

        self.reconciled = True
        logger.info("Startup reconciliation finished", total=summary.total, **summary.as_dict())
        log_business_event("schedule_reconciled", summary.as_dict())
        return summary

    def _reconcile_record(self, record: JobRecord, now: datetime) -> str:
        if record.collection_name != self.collection_name:
            return "skipped"
        phase = self.phase_for(record.name)
        if phase is None:
            logger.warning("Unknown job name in job records", record_id=record.id, job_name=record.name)
            return "skipped"
        try:
            offer_id = int(record.target_id)
        except ValueError:
            self.store.delete_by_id(record.id)
            return "orphaned"

        with self._session_factory() as session:
            offer = session.get(Offer, offer_id)
            if offer is None:
                self.store.delete_by_id(record.id)
                logger.warning("Orphaned job record removed", record_id=record.id, offer_id=offer_id, job_name=record.name)
                return "orphaned"
            start = ensure_utc(offer.start_date_time)  # type: ignore[arg-type]
            end = ensure_utc(offer.end_date_time)  # type: ignore[arg-type]
            products = [dict(p) for p in (offer.products or [])]

        deadline = start if phase is OfferPhase.START else end
        if date_difference(now, deadline, "seconds") <= 0:
            job = OfferPhaseJob(
                offer_id=offer_id,
                phase=phase,
                job_name=record.name,
                deadline=deadline,
                job_record_id=record.id,
                products=products,
                window_start=start,
                window_end=end,
            )
            result = self.execute(job)
            return "applied" if result.ok else "failed"

        self._schedule(phase, False, offer_id, deadline, products, record.id, start, end)
        return "rearmed"

    # ----------------------------- inspection ----------------------------- #
    def _record(self, result: FireResult) -> None:
        with self._history_lock:
            self._history.append(result)

    def recent_fires(self) -> list[FireResult]:
        with self._history_lock:
            return list(self._history)

    def _dead_letter(self, entry: dict[str, Any]) -> None:
        with self._history_lock:
            self._dead_letters.append(entry)

    def dead_letters(self) -> list[dict[str, Any]]:
        with self._history_lock:
            return list(self._dead_letters)

    def snapshot(self) -> dict[str, Any]:
        snap = self.queue.snapshot()
        snap["keys"] = [f"{k[0]}:{k[1]}" for k in self.queue.keys()]
        snap["reconciled"] = self.reconciled
        return snap


__all__ = ["OfferScheduler", "FireResult", "ReconcileSummary"]
