import os
import random
import unittest
from datetime import date

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from models.stock_price import StockPrice
from models.user import User
from services.analytics_service import (
    EMPTY_PORTFOLIO_BASELINE,
    PLACEHOLDER_RISK_METRICS,
    get_analytics,
    period_days,
    simulate_performance,
)
from services.errors import ValidationError
from services.position_service import add_position
from services.position_store import Lot
from services.price_service import upsert_price

TODAY = date(2026, 6, 30)


class PeriodTests(unittest.TestCase):
    def test_known_periods(self):
        self.assertEqual(period_days("1M"), 30)
        self.assertEqual(period_days("3m"), 90)
        self.assertEqual(period_days("6M"), 180)
        self.assertEqual(period_days("1Y"), 365)
        self.assertEqual(period_days("2Y"), 730)

    def test_unknown_period(self):
        with self.assertRaises(ValidationError):
            period_days("5Y")


class SimulatedPerformanceTests(unittest.TestCase):
    def test_points_end_today_and_are_reproducible(self):
        first = simulate_performance(1000.0, 30, end=TODAY, rng=random.Random(42))
        second = simulate_performance(1000.0, 30, end=TODAY, rng=random.Random(42))
        self.assertEqual(first, second)
        self.assertEqual(len(first), 31)
        self.assertEqual(first[-1]["date"], "2026-06-30")
        self.assertEqual(first[0]["date"], "2026-05-31")
        for point in first:
            self.assertGreaterEqual(point["value"], 950.0)
            self.assertLessEqual(point["value"], 1100.0)

    def test_empty_portfolio_uses_baseline(self):
        points = simulate_performance(0.0, 7, end=TODAY, rng=random.Random(1))
        for point in points:
            self.assertGreaterEqual(point["value"], EMPTY_PORTFOLIO_BASELINE * 0.95)
            self.assertLessEqual(point["value"], EMPTY_PORTFOLIO_BASELINE * 1.10)


class AnalyticsTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False)()
        user = User(first_name="Eve", last_name="Stone", email="eve@example.com", password_hash="x")
        self.db.add(user)
        self.db.commit()
        self.user_id = user.id

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _position(self, symbol, shares, price, current, sector):
        lot = Lot(symbol=symbol, name=f"{symbol} Corp", shares=shares, price=price, sector=sector)
        add_position(self.db, self.user_id, lot, current)

    def test_sectors_and_top_performers(self):
        self._position("AAPL", 10, 100.0, 150.0, "Technology")
        self._position("MSFT", 10, 100.0, 50.0, "Technology")
        self._position("JPM", 10, 100.0, 200.0, "Financials")
        for symbol, price in (("T", 10.0), ("F", 10.0), ("GE", 10.0)):
            self._position(symbol, 1, price, price * 1.01, "Industrials")

        data = get_analytics(self.db, self.user_id, "1M", today=TODAY, rng=random.Random(7))

        self.assertTrue(data["simulated"])
        self.assertEqual(data["period"], "1M")
        self.assertEqual(len(data["performance"]), 31)
        self.assertEqual(data["risk_metrics"], PLACEHOLDER_RISK_METRICS)

        sectors = {s["sector"]: s for s in data["sectors"]}
        self.assertEqual(sectors["Technology"]["value"], 2000.0)
        self.assertEqual(sectors["Financials"]["value"], 2000.0)
        self.assertAlmostEqual(sum(s["weight"] for s in data["sectors"]), 100.0, places=1)

        top = data["top_performers"]
        self.assertEqual(len(top), 5)
        self.assertEqual(top[0]["symbol"], "JPM")
        self.assertEqual(top[1]["symbol"], "AAPL")
        self.assertNotIn("MSFT", [t["symbol"] for t in top])

    def test_sector_value_falls_back_to_cost(self):
        self._position("AAPL", 2, 100.0, 120.0, "Technology")
        # drop the cached price so only avg cost is known
        self.db.query(StockPrice).delete()
        self.db.commit()

        data = get_analytics(self.db, self.user_id, "3M", today=TODAY, rng=random.Random(3))
        self.assertEqual(data["sectors"], [{"sector": "Technology", "value": 200.0, "weight": 100.0}])
        self.assertEqual(len(data["performance"]), 91)

    def test_invalid_period(self):
        with self.assertRaises(ValidationError):
            get_analytics(self.db, self.user_id, "10Y")

    def test_price_cache_refresh_changes_valuation(self):
        self._position("AAPL", 1, 100.0, 100.0, "Technology")
        upsert_price(self.db, "AAPL", 300.0)
        self.db.commit()
        data = get_analytics(self.db, self.user_id, "1M", today=TODAY, rng=random.Random(0))
        self.assertEqual(data["sectors"][0]["value"], 300.0)


if __name__ == "__main__":
    unittest.main()
