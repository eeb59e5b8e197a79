"""Audit log write path, query path and CSV export.

Entries are appended synchronously by every mutating operation. A failed
audit write never changes the outcome of the operation that triggered it, but
it is reported on the ``audit.alert`` logger because a lost entry is a lost
forensic record.
"""

import csv
import io
import logging
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, sessionmaker

import config
from core.exceptions import ValidationError
from core.logging_config import AUDIT_ALERT_LOGGER
from models.audit_log import AuditAction, AuditLogModel, AuditResult
from schemas.audit import AuditFilters, RequestContext
from utils.clock import Clock, SYSTEM_CLOCK, ensure_utc, to_iso

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger(AUDIT_ALERT_LOGGER)

CSV_COLUMNS = [
    "time",
    "actor_id",
    "actor_role",
    "action",
    "target",
    "result",
    "reason",
    "request_id",
    "origin",
    "user_agent",
]


def to_csv_row(entry: AuditLogModel) -> List[str]:
    values = [
        entry.timestamp,
        entry.actor_id,
        entry.actor_role,
        entry.action,
        entry.target,
        entry.result,
        entry.reason,
        entry.request_id,
        entry.origin,
        entry.user_agent,
    ]
    return ["" if value is None else str(value) for value in values]


def format_csv(rows: Iterable[Sequence[str]]) -> str:
    """Render rows as CSV.

    Fields containing a comma, quote or newline are quote-wrapped with
    internal quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def require_bounded_range(filters: AuditFilters) -> None:
    """Full exports must name both ends of the time range.

    Raises:
        ValidationError: If either bound is missing or the range is inverted.
    """
    if filters.from_time is None or filters.to_time is None:
        raise ValidationError("mode=all requires from and to parameters")
    if ensure_utc(filters.from_time) > ensure_utc(filters.to_time):
        raise ValidationError("from must not be later than to")


class AuditManager:
    """Appends and reads audit log entries."""

    def __init__(self, db: Session, clock: Clock = SYSTEM_CLOCK):
        """Initialize AuditManager.

        Args:
            db: SQLAlchemy Session.
            clock: Source of entry timestamps.
        """
        self.db = db
        self.clock = clock

    def record(
        self,
        actor_id: str,
        actor_role: str,
        action: AuditAction,
        target: str,
        result: AuditResult,
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> Optional[AuditLogModel]:
        """Append one audit entry.

        Args:
            actor_id: User ID performing the action.
            actor_role: Role the actor acted under.
            action: What was attempted.
            target: Reference to the affected object, e.g. "classId/code".
            result: Outcome of the attempt.
            reason: Optional failure reason.
            context: Request metadata (request id, origin, user agent).

        Returns:
            The stored entry, or None if the write failed.
        """
        context = context or RequestContext()
        entry = AuditLogModel(
            timestamp=self.clock.now_iso(),
            actor_id=actor_id,
            actor_role=actor_role,
            action=AuditAction(action).value,
            target=target,
            result=AuditResult(result).value,
            reason=reason,
            request_id=context.request_id,
            origin=context.origin,
            user_agent=context.user_agent,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            alert_logger.critical(
                "Audit write failed, entry lost: action=%s actor=%s role=%s target=%s result=%s error=%s",
                entry.action,
                actor_id,
                actor_role,
                target,
                entry.result,
                exc,
            )
            return None
        logger.debug("Audit %s %s by %s on %s", entry.action, entry.result, actor_id, target)
        return entry

    def _filtered_query(self, filters: AuditFilters) -> Query:
        query = self.db.query(AuditLogModel)
        if filters.class_id:
            query = query.filter(
                or_(
                    AuditLogModel.target == filters.class_id,
                    AuditLogModel.target.startswith(f"{filters.class_id}/", autoescape=True),
                )
            )
        if filters.actor_id:
            query = query.filter(AuditLogModel.actor_id == filters.actor_id)
        if filters.action:
            query = query.filter(AuditLogModel.action == filters.action)
        if filters.actor_role:
            query = query.filter(AuditLogModel.actor_role == filters.actor_role)
        if filters.from_time:
            query = query.filter(AuditLogModel.timestamp >= to_iso(ensure_utc(filters.from_time)))
        if filters.to_time:
            query = query.filter(AuditLogModel.timestamp <= to_iso(ensure_utc(filters.to_time)))
        return query

    @staticmethod
    def _ordered(query: Query, order: str) -> Query:
        if order == "asc":
            return query.order_by(AuditLogModel.timestamp.asc(), AuditLogModel.id.asc())
        return query.order_by(AuditLogModel.timestamp.desc(), AuditLogModel.id.desc())

    def count(self, filters: AuditFilters) -> int:
        return self._filtered_query(filters).count()

    def query(
        self,
        filters: AuditFilters,
        limit: int = config.AUDIT_QUERY_DEFAULT_LIMIT,
        offset: int = 0,
        order: str = "desc",
    ) -> Tuple[List[AuditLogModel], int]:
        """Return one page of matching entries and the total match count.

        Args:
            filters: Entry filters.
            limit: Page size.
            offset: Entries to skip.
            order: "desc" (newest first, default) or "asc".

        Returns:
            Tuple of (page items, total entries matching the filters).
        """
        if limit < 1 or limit > config.AUDIT_QUERY_MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {config.AUDIT_QUERY_MAX_LIMIT}")
        if offset < 0:
            raise ValidationError("offset must not be negative")
        items = (
            self._ordered(self._filtered_query(filters), order)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, self.count(filters)

    def export_page(self, filters: AuditFilters, order: str = "desc") -> str:
        """Render at most AUDIT_EXPORT_PAGE_CAP matching entries as one CSV."""
        entries = (
            self._ordered(self._filtered_query(filters), order)
            .limit(config.AUDIT_EXPORT_PAGE_CAP)
            .all()
        )
        return format_csv([CSV_COLUMNS] + [to_csv_row(e) for e in entries])

    def iter_export(self, filters: AuditFilters, order: str = "desc") -> Iterator[str]:
        """Stream every matching entry as CSV chunks, one batch per chunk.

        Raises:
            ValidationError: If the time range is not bounded on both ends.
        """
        require_bounded_range(filters)
        return self._iter_export(filters, order)

    def _iter_export(self, filters: AuditFilters, order: str) -> Iterator[str]:
        yield format_csv([CSV_COLUMNS])
        batch_size = config.AUDIT_EXPORT_BATCH_SIZE
        max_rows = config.AUDIT_EXPORT_MAX_ROWS
        written = 0
        while written < max_rows:
            requested = min(batch_size, max_rows - written)
            batch = (
                self._ordered(self._filtered_query(filters), order)
                .offset(written)
                .limit(requested)
                .all()
            )
            if not batch:
                break
            yield format_csv(to_csv_row(e) for e in batch)
            written += len(batch)
            if len(batch) < requested:
                break
        else:
            logger.warning("Audit export stopped at the %d row ceiling", max_rows)
        logger.info("Streamed %d audit rows", written)


def stream_export(
    session_factory: sessionmaker,
    filters: AuditFilters,
    order: str = "desc",
    clock: Clock = SYSTEM_CLOCK,
) -> Iterator[str]:
    """Stream an export using a session that lives as long as the stream."""
    db = session_factory()
    try:
        yield from AuditManager(db, clock).iter_export(filters, order)
    finally:
        db.close()
