from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from types import ModuleType
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetledger.core.errors import ReconcileStorageError, ReconcileTimeoutError
from fleetledger.domain.conditions import Condition, dump_conditions, validate_condition_document
from fleetledger.domain.models import AdapterStatus
from fleetledger.persistence.repos import adapter_statuses as adapter_status_repo
from fleetledger.services.status.merge import load_previous_conditions, merge_conditions
from fleetledger.services.status.validation import (
    REASON_STALE_GENERATION,
    MandatoryConditionValidator,
    Rejection,
)


logger = logging.getLogger(__name__)

OUTCOME_STORED = "stored"
OUTCOME_DISCARDED = "discarded"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _not_before(now: datetime, floor: datetime | None) -> datetime:
    if floor is None:
        return now
    if floor.tzinfo is None:
        floor = floor.replace(tzinfo=timezone.utc)
    return max(now, floor)


@dataclass(frozen=True)
class AdapterStatusReport:
    # One inbound report from an adapter about one resource.
    resource_type: str
    resource_id: str
    adapter: str
    observed_generation: int
    conditions: tuple[Condition, ...]
    observed_time: datetime | None = None
    data: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class ReconcileOutcome:
    outcome: str
    status: AdapterStatus | None = None
    created: bool = False
    rejection: Rejection | None = field(default=None)

    @property
    def stored(self) -> bool:
        return self.outcome == OUTCOME_STORED

    @property
    def discarded(self) -> bool:
        return self.outcome == OUTCOME_DISCARDED


class AdapterStatusReconciler:
    """Validate, merge and persist adapter status reports.

    The reconciler runs inside the caller's transaction and never commits:
    on ``ReconcileStorageError`` or ``ReconcileTimeoutError`` the caller must
    roll back so that no partial write becomes visible.
    """

    def __init__(
        self,
        *,
        validator: MandatoryConditionValidator,
        repo: ModuleType | Any = adapter_status_repo,
        time_provider: Callable[[], datetime] | None = None,
        discard_stale_generations: bool = True,
        timeout_s: float | None = None,
    ) -> None:
        self._validator = validator
        self._repo = repo
        # Allow time injection for deterministic timestamp tests.
        self._time_provider = time_provider or _utc_now
        self._discard_stale_generations = discard_stale_generations
        self._timeout_s = timeout_s

    async def reconcile(self, session: AsyncSession, report: AdapterStatusReport) -> ReconcileOutcome:
        # Reject malformed documents before anything reaches the storage layer.
        validate_condition_document(report.conditions)
        if not self._timeout_s:
            return await self._reconcile(session, report)
        try:
            return await asyncio.wait_for(self._reconcile(session, report), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "adapter_status.reconcile_timeout",
                extra={"resource_type": report.resource_type, "resource_id": report.resource_id, "adapter": report.adapter},
            )
            raise ReconcileTimeoutError(
                f"Adapter status reconciliation exceeded {self._timeout_s}s",
                adapter=report.adapter,
            ) from exc

    async def _reconcile(self, session: AsyncSession, report: AdapterStatusReport) -> ReconcileOutcome:
        try:
            existing = await self._lookup(session, report)
            # Read the clock only once the row lock is held.
            now = self._time_provider()

            rejection = self._validator.validate(report.resource_type, report.conditions)
            if rejection is None:
                rejection = self._stale_rejection(existing, report)
            if rejection is not None:
                return self._discard(report, rejection)

            if existing is None:
                try:
                    row = await self._insert(session, report, now)
                    self._log_stored(report, created=True)
                    return ReconcileOutcome(outcome=OUTCOME_STORED, status=row, created=True)
                except IntegrityError:
                    # Another report for the same key won the insert race; merge over its row.
                    logger.info(
                        "adapter_status.insert_conflict",
                        extra={"resource_type": report.resource_type, "resource_id": report.resource_id, "adapter": report.adapter},
                    )
                    existing = await self._lookup(session, report)
                    if existing is None:
                        raise ReconcileStorageError(
                            "Adapter status insert conflicted but no live row was found",
                            adapter=report.adapter,
                        )
                    rejection = self._stale_rejection(existing, report)
                    if rejection is not None:
                        return self._discard(report, rejection)
                    now = self._time_provider()

            row = await self._update(session, existing, report, now)
            self._log_stored(report, created=False)
            return ReconcileOutcome(outcome=OUTCOME_STORED, status=row, created=False)
        except SQLAlchemyError as exc:
            logger.exception(
                "adapter_status.storage_failed",
                extra={"resource_type": report.resource_type, "resource_id": report.resource_id, "adapter": report.adapter},
            )
            raise ReconcileStorageError("Database error while storing adapter status", adapter=report.adapter) from exc

    async def _lookup(self, session: AsyncSession, report: AdapterStatusReport) -> AdapterStatus | None:
        return await self._repo.get_for_key(
            session,
            resource_type=report.resource_type,
            resource_id=report.resource_id,
            adapter=report.adapter,
            for_update=True,
        )

    def _stale_rejection(self, existing: AdapterStatus | None, report: AdapterStatusReport) -> Rejection | None:
        if not self._discard_stale_generations or existing is None:
            return None
        if report.observed_generation < existing.observed_generation:
            return Rejection(reason=REASON_STALE_GENERATION)
        return None

    async def _insert(self, session: AsyncSession, report: AdapterStatusReport, now: datetime) -> AdapterStatus:
        # First report for the key: every condition transitions now.
        conditions = [condition.with_transition_time(now) for condition in report.conditions]
        return await self._repo.insert(
            session,
            resource_type=report.resource_type,
            resource_id=report.resource_id,
            adapter=report.adapter,
            observed_generation=report.observed_generation,
            conditions=dump_conditions(conditions),
            data=report.data,
            metadata_json=report.metadata,
            now=now,
        )

    async def _update(
        self,
        session: AsyncSession,
        existing: AdapterStatus,
        report: AdapterStatusReport,
        now: datetime,
    ) -> AdapterStatus:
        # Never stamp a report earlier than the one it supersedes.
        now = _not_before(now, existing.last_report_time)
        previous = load_previous_conditions(existing.conditions)
        merged = merge_conditions(previous, report.conditions, now)
        return await self._repo.apply_update(
            session,
            existing,
            observed_generation=report.observed_generation,
            conditions=dump_conditions(merged),
            data=report.data,
            metadata_json=report.metadata,
            now=now,
        )

    def _discard(self, report: AdapterStatusReport, rejection: Rejection) -> ReconcileOutcome:
        logger.info(
            "adapter_status.discarded",
            extra={
                "resource_type": report.resource_type,
                "resource_id": report.resource_id,
                "adapter": report.adapter,
                "reason": rejection.reason,
                "detail": rejection.describe(),
            },
        )
        return ReconcileOutcome(outcome=OUTCOME_DISCARDED, rejection=rejection)

    def _log_stored(self, report: AdapterStatusReport, *, created: bool) -> None:
        logger.info(
            "adapter_status.stored",
            extra={
                "resource_type": report.resource_type,
                "resource_id": report.resource_id,
                "adapter": report.adapter,
                "observed_generation": report.observed_generation,
                "row_created": created,
            },
        )
