import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from services.position_service import build_portfolio
from services.valuation import PriceQuote, merge_lot, value_portfolio, value_position


class _Row:
    def __init__(self, symbol, shares, avg_price, id=1, name="", sector="Technology", purchase_date=None):
        self.id = id
        self.symbol = symbol
        self.name = name or symbol
        self.shares = shares
        self.avg_price = avg_price
        self.sector = sector
        self.purchase_date = purchase_date


class MergeLotTests(unittest.TestCase):
    def test_weighted_average(self):
        shares, avg = merge_lot(100, 150.0, 50, 180.0)
        self.assertEqual(shares, 150)
        self.assertAlmostEqual(avg, 160.0)

    def test_general_formula(self):
        shares, avg = merge_lot(3, 10.0, 7, 20.0)
        self.assertEqual(shares, 10)
        self.assertAlmostEqual(avg, (3 * 10.0 + 7 * 20.0) / 10)

    def test_non_positive_total_rejected(self):
        with self.assertRaises(ValueError):
            merge_lot(0, 10.0, 0, 20.0)


class ValuePositionTests(unittest.TestCase):
    def test_gain_loss_identity(self):
        v = value_position("AAPL", 10, 100.0, PriceQuote(current_price=125.0, day_change=2.0))
        self.assertAlmostEqual(v.current_value, 1250.0)
        self.assertAlmostEqual(v.cost_basis, 1000.0)
        self.assertAlmostEqual(v.gain_loss, v.current_value - v.cost_basis)
        self.assertAlmostEqual(v.gain_loss_percent, 25.0)
        self.assertAlmostEqual(v.day_gain_loss, 20.0)
        self.assertEqual(v.price_status, "live")

    def test_zero_cost_basis_gives_zero_percent(self):
        v = value_position("FREE", 10, 0.0, PriceQuote(current_price=5.0))
        self.assertEqual(v.cost_basis, 0)
        self.assertEqual(v.gain_loss_percent, 0.0)
        self.assertAlmostEqual(v.gain_loss, 50.0)

    def test_missing_quote_values_at_cost(self):
        v = value_position("MSFT", 4, 250.0, None)
        self.assertEqual(v.current_price, 250.0)
        self.assertEqual(v.gain_loss, 0.0)
        self.assertEqual(v.price_status, "unavailable")


class ValuePortfolioTests(unittest.TestCase):
    def test_totals_and_weights(self):
        rows = [_Row("AAPL", 10, 100.0, id=1), _Row("MSFT", 5, 200.0, id=2)]
        quotes = {
            "AAPL": PriceQuote(current_price=150.0, day_change=1.0),
            "MSFT": PriceQuote(current_price=100.0, day_change=-2.0),
        }
        result = value_portfolio(rows, quotes)
        summary = result.summary

        self.assertAlmostEqual(summary.total_value, 2000.0)
        self.assertAlmostEqual(summary.total_cost, 2000.0)
        self.assertAlmostEqual(summary.total_gain_loss, 0.0)
        self.assertAlmostEqual(summary.total_gain_loss_percent, 0.0)
        self.assertAlmostEqual(summary.day_gain_loss, 0.0)
        self.assertEqual(summary.position_count, 2)
        self.assertEqual(summary.price_status, "live")
        self.assertAlmostEqual(result.positions[0].weight, 75.0)
        self.assertAlmostEqual(result.positions[1].weight, 25.0)

    def test_mixed_price_status(self):
        rows = [_Row("AAPL", 1, 10.0), _Row("ZZZ", 1, 10.0)]
        result = value_portfolio(rows, {"AAPL": PriceQuote(current_price=12.0)})
        self.assertEqual(result.summary.price_status, "mixed")

    def test_empty_portfolio(self):
        result = value_portfolio([], {})
        self.assertEqual(result.summary.total_value, 0.0)
        self.assertEqual(result.summary.total_gain_loss_percent, 0.0)
        self.assertEqual(result.summary.day_gain_loss_percent, 0.0)
        self.assertEqual(result.positions, [])

    def test_build_portfolio_shape(self):
        rows = [_Row("AAPL", 150, 160.0, name="Apple Inc.")]
        data = build_portfolio(rows, {"AAPL": PriceQuote(current_price=170.0)})
        self.assertEqual(len(data["portfolio"]), 1)
        item = data["portfolio"][0]
        self.assertEqual(item["symbol"], "AAPL")
        self.assertEqual(item["current_value"], 25500.0)
        self.assertEqual(item["gain_loss"], 1500.0)
        self.assertEqual(data["summary"]["total_value"], 25500.0)


if __name__ == "__main__":
    unittest.main()
