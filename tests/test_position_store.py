import os
import shutil
import tempfile
import threading
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from models.activity_log import ActivityLog
from models.position import Position
from models.stock_price import StockPrice
from models.user import User
from services import position_service
from services.errors import ConflictError, NotFoundError
from services.position_store import InMemoryPositionStore, Lot, SqlPositionStore, _MergeRaced

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _lot(symbol="AAPL", shares=100.0, price=150.0, sector="Technology"):
    return Lot(symbol=symbol, name=f"{symbol} Inc.", shares=shares, price=price, sector=sector)


def _add_user(db, email="owner@example.com"):
    user = User(first_name="Ada", last_name="Lovelace", email=email, password_hash="x")
    db.add(user)
    db.commit()
    return user.id


class InMemoryPositionStoreTests(unittest.TestCase):
    def test_merge_creates_then_folds(self):
        store = InMemoryPositionStore()
        first, created = store.merge_lot(1, _lot(shares=100, price=150.0), now=NOW)
        self.assertTrue(created)
        merged, created = store.merge_lot(1, _lot(shares=50, price=180.0), now=NOW)
        self.assertFalse(created)
        self.assertEqual(merged.id, first.id)
        self.assertEqual(merged.shares, 150)
        self.assertAlmostEqual(merged.avg_price, 160.0)

    def test_new_symbol_leaves_other_rows_alone(self):
        store = InMemoryPositionStore()
        aapl, _ = store.merge_lot(1, _lot("AAPL", 10, 100.0))
        store.merge_lot(1, _lot("MSFT", 5, 300.0))
        again = store.get_by_id(1, aapl.id)
        self.assertEqual((again.shares, again.avg_price), (10, 100.0))
        self.assertEqual([r.symbol for r in store.list_active(1)], ["AAPL", "MSFT"])

    def test_ownership_and_deactivate(self):
        store = InMemoryPositionStore()
        row, _ = store.merge_lot(1, _lot())
        self.assertIsNone(store.get_by_id(2, row.id))
        store.deactivate(row)
        self.assertIsNone(store.get_by_id(1, row.id))
        fresh, created = store.merge_lot(1, _lot(shares=1, price=1.0))
        self.assertTrue(created)
        self.assertNotEqual(fresh.id, row.id)

    def test_concurrent_merges_keep_every_share(self):
        store = InMemoryPositionStore()
        threads = [
            threading.Thread(target=lambda: [store.merge_lot(7, _lot(shares=1, price=10.0)) for _ in range(50)])
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        rows = store.list_active(7)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].shares, 400)
        self.assertAlmostEqual(rows[0].avg_price, 10.0)


class SqlPositionStoreTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False)()
        self.user_id = _add_user(self.db)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_add_position_merges_and_updates_price_cache(self):
        _, created = position_service.add_position(self.db, self.user_id, _lot(shares=100, price=150.0), 155.0, now=NOW)
        self.assertTrue(created)
        position, created = position_service.add_position(
            self.db, self.user_id, _lot(shares=50, price=180.0), 170.0, now=NOW
        )
        self.assertFalse(created)
        self.assertEqual(position.shares, 150)
        self.assertAlmostEqual(position.avg_price, 160.0)
        self.assertEqual(position.version, 2)

        price = self.db.get(StockPrice, "AAPL")
        self.assertEqual(price.current_price, 170.0)
        self.assertEqual(self.db.query(ActivityLog).filter_by(action="add_position").count(), 2)

    def test_new_symbol_leaves_other_rows_alone(self):
        aapl, _ = position_service.add_position(self.db, self.user_id, _lot("AAPL", 10, 100.0), 100.0)
        position_service.add_position(self.db, self.user_id, _lot("MSFT", 5, 300.0), 310.0)
        row = self.db.get(Position, aapl.id)
        self.db.refresh(row)
        self.assertEqual((row.shares, row.avg_price, row.version), (10, 100.0, 1))

    def test_update_and_soft_delete(self):
        position, _ = position_service.add_position(self.db, self.user_id, _lot(), 150.0)
        position_service.update_position(
            self.db, self.user_id, position.id,
            shares=20, avg_price=140.0, current_price=145.0, sector="Tech",
        )
        fetched = position_service.get_position(self.db, self.user_id, position.id)
        self.assertEqual(fetched["shares"], 20)
        self.assertEqual(fetched["sector"], "Tech")
        self.assertEqual(fetched["current_price"], 145.0)

        position_service.delete_position(self.db, self.user_id, position.id)
        with self.assertRaises(NotFoundError):
            position_service.get_position(self.db, self.user_id, position.id)
        self.assertEqual(position_service.get_portfolio(self.db, self.user_id)["portfolio"], [])

        # a soft-deleted row does not block a fresh position for the same symbol
        _, created = position_service.add_position(self.db, self.user_id, _lot(shares=1, price=1.0), 1.0)
        self.assertTrue(created)

    def test_other_users_position_is_not_found(self):
        other_id = _add_user(self.db, "other@example.com")
        position, _ = position_service.add_position(self.db, self.user_id, _lot(), 150.0)
        with self.assertRaises(NotFoundError):
            position_service.get_position(self.db, other_id, position.id)
        with self.assertRaises(NotFoundError):
            position_service.delete_position(self.db, other_id, position.id)
        self.assertIsNotNone(SqlPositionStore(self.db).get_by_id(self.user_id, position.id))


class MergeGiveUpTests(unittest.TestCase):
    def test_exhausted_retries_raise_conflict(self):
        store = SqlPositionStore(MagicMock())
        calls = []

        def always_lose(user_id, lot, now, attempt):
            calls.append(attempt)
            raise _MergeRaced()

        with patch.object(store, "_merge_once", side_effect=always_lose), \
                patch("services.position_store.MAX_MERGE_ATTEMPTS", 3), \
                patch("services.position_store.MERGE_RETRY_JITTER_SEC", 0):
            with self.assertRaises(ConflictError) as ctx:
                store.merge_lot(1, _lot())
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(calls, [1, 2, 3])


class ConcurrentSqlMergeTests(unittest.TestCase):
    """Separate connections against a file database, one session per thread."""

    THREADS = 6
    LOTS_PER_THREAD = 5

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        url = f"sqlite:///{os.path.join(self.tmpdir, 'ledger.db')}"
        self.engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False)
        with self.Session() as db:
            self.user_id = _add_user(db)

    def tearDown(self):
        self.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_concurrent_lots_never_lose_an_update(self):
        errors = []
        barrier = threading.Barrier(self.THREADS)

        def worker(n):
            barrier.wait()
            try:
                for _ in range(self.LOTS_PER_THREAD):
                    with self.Session() as db:
                        position_service.add_position(
                            db, self.user_id, _lot(shares=2, price=10.0 + n), 12.0
                        )
            except Exception as exc:  # surfaced in the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        with self.Session() as db:
            rows = db.query(Position).filter_by(user_id=self.user_id, is_active=True).all()
            self.assertEqual(len(rows), 1)
            total_lots = self.THREADS * self.LOTS_PER_THREAD
            self.assertEqual(rows[0].shares, 2 * total_lots)
            expected_avg = sum(10.0 + n for n in range(self.THREADS)) / self.THREADS
            self.assertAlmostEqual(rows[0].avg_price, expected_avg)
            self.assertEqual(rows[0].version, total_lots)


if __name__ == "__main__":
    unittest.main()
