import unittest

from powerdash.alignment import AlignedSeriesSpec, align_and_window, aligned_pairs, rolling_comparison
from powerdash.calendar_keys import day_of_month, iter_days
from powerdash.ingest import SheetSeries
from powerdash.stats import pearson_correlation


class TestAlignAndWindow(unittest.TestCase):
    def setUp(self):
        self.price = AlignedSeriesSpec("price", {"2024-03-01": 1.0, "2024-03-02": 2.0, "2024-03-03": 3.0})
        self.index = AlignedSeriesSpec(
            "index", {"2024-02-28": 10.0, "2024-02-29": 20.0, "2024-03-01": 30.0}, lagged=True
        )

    def test_lagged_lookup_keeps_shown_date(self):
        rows = align_and_window([self.price, self.index], "2024-03-03", "2024-03-01", lag_days=2)
        self.assertEqual([r.date for r in rows], ["2024-03-01", "2024-03-02", "2024-03-03"])
        first = rows[0]
        self.assertEqual(first.label, "01-03-2024")
        self.assertEqual(first.cells["index"].shown_date, "2024-03-01")
        self.assertEqual(first.cells["index"].queried_date, "2024-02-28")
        self.assertEqual(first.cells["index"].value, 10.0)
        self.assertEqual(first.cells["price"].queried_date, "2024-03-01")
        self.assertEqual(first.cells["price"].value, 1.0)

    def test_missing_values_are_none(self):
        rows = align_and_window([self.price], "2024-03-03", "2024-03-04")
        self.assertIsNone(rows[-1].cells["price"].value)

    def test_pairs_feed_correlation(self):
        rows = align_and_window([self.price, self.index], "2024-03-01", "2024-03-04", lag_days=2)
        pairs = aligned_pairs(rows, "price", "index")
        self.assertEqual(pairs, [(1.0, 10.0), (2.0, 20.0), (3.0, 30.0)])
        self.assertAlmostEqual(pearson_correlation(pairs), 1.0)
        self.assertEqual(aligned_pairs(rows, "price", "missing"), [])

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            align_and_window([self.price], "2024-03-01", "2024-03-02", lag_days=-1)
        with self.assertRaises(ValueError):
            align_and_window([self.price, self.price], "2024-03-01", "2024-03-02")
        for bad in ["05/03/2024", "2024-03-05junk", "2024-02-30"]:
            with self.subTest(bad=bad):
                with self.assertRaises(ValueError):
                    align_and_window([self.price], bad, "2024-03-06")


class TestRollingComparison(unittest.TestCase):
    def setUp(self):
        self.anchor = {d: float(day_of_month(d)) for d in iter_days("2024-03-01", "2024-03-31")}
        self.sheet = SheetSeries(
            name="Prices",
            dates=["2023-03-06", "2024-03-01", "2024-03-04", "2024-03-05"],
            columns=["A"],
            values={"A": {"2023-03-06": 5.0, "2024-03-01": 10.0, "2024-03-04": 20.0, "2024-03-05": 30.0}},
            latest_date="2024-03-05",
        )

    def test_calendar_vs_trading_windows(self):
        rows = rolling_comparison(self.anchor, self.sheet, ["A"], window_days=2, show_days=3)
        self.assertEqual([r.date for r in rows], ["2024-03-03", "2024-03-04", "2024-03-05"])
        # the trading window reaches back across the gap to the previous year's print
        self.assertEqual([r.values["A"] for r in rows], [7.5, 15.0, 25.0])
        self.assertEqual(rows[-1].anchor_value, 4.5)

    def test_yoy_shifted_365_days(self):
        last = rolling_comparison(self.anchor, self.sheet, ["A"], window_days=2, show_days=1)[-1]
        self.assertAlmostEqual(last.yoy_pct["A"], 400.0)
        self.assertIsNone(last.anchor_yoy_pct)

    def test_without_yoy(self):
        last = rolling_comparison(self.anchor, self.sheet, ["A"], window_days=2, show_days=1, include_yoy=False)[-1]
        self.assertEqual(last.yoy_pct, {})

    def test_unknown_columns_dropped(self):
        with self.assertLogs("powerdash.alignment", level="WARNING"):
            rows = rolling_comparison(self.anchor, self.sheet, ["A", "B"], window_days=2, show_days=1)
        self.assertEqual(list(rows[0].values), ["A"])

    def test_empty_sheet(self):
        self.assertEqual(rolling_comparison(self.anchor, SheetSeries(name="x"), ["A"], window_days=7), [])

    def test_window_and_span_must_be_positive(self):
        with self.assertRaises(ValueError):
            rolling_comparison(self.anchor, self.sheet, ["A"], window_days=0)
        with self.assertRaises(ValueError):
            rolling_comparison(self.anchor, self.sheet, ["A"], window_days=7, show_days=0)
        with self.assertRaises(ValueError):
            rolling_comparison({}, SheetSeries(name="x"), ["A"], window_days=0)


if __name__ == "__main__":
    unittest.main()
