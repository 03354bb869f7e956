# services/position_store.py
"""
Persistence boundary for the position ledger.

Both stores fold lots with `valuation.merge_lot`, so merge and valuation
behave the same whichever backing store is in use.

- SqlPositionStore: SQLAlchemy session; concurrent lots for one
  (user, symbol) are serialized by a compare-and-swap on `Position.version`
  plus the partial unique index on active rows.
- InMemoryPositionStore: process-local, one lock per (user, symbol).
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from prometheus_client import Counter
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from models.position import Position
from services.errors import ConflictError
from services.valuation import merge_lot
from utils.common_helpers import utcnow

logger = logging.getLogger(__name__)

MAX_MERGE_ATTEMPTS = 25
MERGE_RETRY_JITTER_SEC = 0.02

# Metrics
MERGE_RETRIES = Counter(
    "position_merge_retries_total",
    "Position merges retried after losing a race",
    ["kind"],
)
MERGE_CONFLICTS = Counter(
    "position_merge_conflicts_total",
    "Position merges abandoned after exhausting retries",
)


class _MergeRaced(Exception):
    """Another writer changed or created the row first."""


@dataclass(frozen=True)
class Lot:
    symbol: str
    name: str
    shares: float
    price: float
    sector: str
    purchase_date: Optional[date] = None


@dataclass
class PositionRecord:
    id: int
    user_id: int
    symbol: str
    name: str
    shares: float
    avg_price: float
    sector: str
    purchase_date: Optional[date] = None
    is_active: bool = True
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class PositionStore(Protocol):
    def list_active(self, user_id: int) -> List[Any]: ...

    def get_active(self, user_id: int, symbol: str) -> Optional[Any]: ...

    def get_by_id(self, user_id: int, position_id: int) -> Optional[Any]: ...

    def merge_lot(self, user_id: int, lot: Lot, *, now: Optional[datetime] = None) -> Tuple[Any, bool]: ...

    def put(self, position: Any, *, shares: float, avg_price: float, sector: str,
            now: Optional[datetime] = None) -> Any: ...

    def deactivate(self, position: Any, *, now: Optional[datetime] = None) -> None: ...


class SqlPositionStore:
    """
    Positions in the relational store. Does not commit; the caller owns the
    unit of work. `merge_lot` may roll back and retry, so it must be the first
    write of its transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_active(self, user_id: int) -> List[Position]:
        return (
            self.db.query(Position)
            .filter(Position.user_id == user_id, Position.is_active.is_(True))
            .order_by(Position.symbol.asc())
            .all()
        )

    def get_active(self, user_id: int, symbol: str) -> Optional[Position]:
        return (
            self.db.query(Position)
            .filter(
                Position.user_id == user_id,
                Position.symbol == symbol,
                Position.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
            .first()
        )

    def get_by_id(self, user_id: int, position_id: int) -> Optional[Position]:
        return (
            self.db.query(Position)
            .filter(
                Position.id == position_id,
                Position.user_id == user_id,
                Position.is_active.is_(True),
            )
            .first()
        )

    def merge_lot(self, user_id: int, lot: Lot, *, now: Optional[datetime] = None) -> Tuple[Position, bool]:
        now = now or utcnow()
        retrying = Retrying(
            stop=stop_after_attempt(MAX_MERGE_ATTEMPTS),
            wait=wait_random(min=0, max=MERGE_RETRY_JITTER_SEC),
            retry=retry_if_exception_type(_MergeRaced),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._merge_once(user_id, lot, now, attempt.retry_state.attempt_number)
        except _MergeRaced:
            MERGE_CONFLICTS.inc()
            logger.warning("position_merge_gave_up user_id=%s symbol=%s", user_id, lot.symbol)
            raise ConflictError("Position is being updated concurrently, please retry")

    def _merge_once(self, user_id: int, lot: Lot, now: datetime, attempt: int) -> Tuple[Position, bool]:
        existing = self.get_active(user_id, lot.symbol)

        if existing is None:
            position = Position(
                user_id=user_id,
                symbol=lot.symbol,
                name=lot.name,
                shares=lot.shares,
                avg_price=lot.price,
                sector=lot.sector,
                purchase_date=lot.purchase_date,
                is_active=True,
                version=1,
                created_at=now,
                updated_at=now,
            )
            self.db.add(position)
            try:
                self.db.flush()
            except IntegrityError:
                # another request created the row first; merge into it next time round
                self._lost_race("insert", user_id, lot.symbol, attempt)
            return position, True

        shares, avg_price = merge_lot(existing.shares, existing.avg_price, lot.shares, lot.price)
        result = self.db.execute(
            update(Position)
            .where(
                Position.id == existing.id,
                Position.version == existing.version,
                Position.is_active.is_(True),
            )
            .values(
                shares=shares,
                avg_price=avg_price,
                version=Position.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._lost_race("update", user_id, lot.symbol, attempt)
        self.db.refresh(existing)
        return existing, False

    def _lost_race(self, kind: str, user_id: int, symbol: str, attempt: int) -> None:
        self.db.rollback()
        MERGE_RETRIES.labels(kind=kind).inc()
        logger.info("position_merge_retry kind=%s user_id=%s symbol=%s attempt=%d", kind, user_id, symbol, attempt)
        raise _MergeRaced()

    def put(self, position: Position, *, shares: float, avg_price: float, sector: str,
            now: Optional[datetime] = None) -> Position:
        position.shares = shares
        position.avg_price = avg_price
        position.sector = sector
        position.version = position.version + 1
        position.updated_at = now or utcnow()
        self.db.flush()
        return position

    def deactivate(self, position: Position, *, now: Optional[datetime] = None) -> None:
        position.is_active = False
        position.updated_at = now or utcnow()
        self.db.flush()


class InMemoryPositionStore:
    """Thread-safe in-process ledger with the same contract as SqlPositionStore."""

    def __init__(self) -> None:
        self._rows: Dict[int, PositionRecord] = {}
        self._ids = itertools.count(1)
        self._guard = threading.Lock()
        self._key_locks: Dict[Tuple[int, str], threading.Lock] = {}

    def _lock_for(self, user_id: int, symbol: str) -> threading.Lock:
        with self._guard:
            return self._key_locks.setdefault((user_id, symbol), threading.Lock())

    def list_active(self, user_id: int) -> List[PositionRecord]:
        with self._guard:
            rows = [r for r in self._rows.values() if r.user_id == user_id and r.is_active]
        return sorted(rows, key=lambda r: r.symbol)

    def get_active(self, user_id: int, symbol: str) -> Optional[PositionRecord]:
        with self._guard:
            for row in self._rows.values():
                if row.user_id == user_id and row.symbol == symbol and row.is_active:
                    return row
        return None

    def get_by_id(self, user_id: int, position_id: int) -> Optional[PositionRecord]:
        with self._guard:
            row = self._rows.get(position_id)
        if row is None or row.user_id != user_id or not row.is_active:
            return None
        return row

    def merge_lot(self, user_id: int, lot: Lot, *, now: Optional[datetime] = None) -> Tuple[PositionRecord, bool]:
        now = now or utcnow()
        with self._lock_for(user_id, lot.symbol):
            existing = self.get_active(user_id, lot.symbol)
            if existing is None:
                record = PositionRecord(
                    id=next(self._ids),
                    user_id=user_id,
                    symbol=lot.symbol,
                    name=lot.name,
                    shares=lot.shares,
                    avg_price=lot.price,
                    sector=lot.sector,
                    purchase_date=lot.purchase_date,
                    created_at=now,
                    updated_at=now,
                )
                with self._guard:
                    self._rows[record.id] = record
                return record, True

            existing.shares, existing.avg_price = merge_lot(
                existing.shares, existing.avg_price, lot.shares, lot.price
            )
            existing.version += 1
            existing.updated_at = now
            return existing, False

    def put(self, position: PositionRecord, *, shares: float, avg_price: float, sector: str,
            now: Optional[datetime] = None) -> PositionRecord:
        with self._lock_for(position.user_id, position.symbol):
            position.shares = shares
            position.avg_price = avg_price
            position.sector = sector
            position.version += 1
            position.updated_at = now or utcnow()
        return position

    def deactivate(self, position: PositionRecord, *, now: Optional[datetime] = None) -> None:
        with self._lock_for(position.user_id, position.symbol):
            position.is_active = False
            position.updated_at = now or utcnow()
