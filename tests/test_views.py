import unittest

from powerdash.alignment import AlignedSeriesSpec
from powerdash.calendar_keys import day_of_month, iter_days
from powerdash.capacity import CapacityHistory, parse_capacity_history
from powerdash.charts import build_series_chart
from powerdash.config import SERIES_PRESETS, AggregationConfig
from powerdash.ingest import SheetSeries, SpreadsheetBook
from powerdash.models import ChartPoint
from powerdash.views import (
    compute_alignment_view,
    compute_capacity_view,
    compute_comparison_view,
    compute_series_view,
)


def _series():
    out = {d: 1.0 for d in iter_days("2023-01-01", "2023-12-31")}
    out.update({d: 2.0 + day_of_month(d) / 100 for d in iter_days("2024-01-01", "2024-06-30")})
    return out


class TestSeriesView(unittest.TestCase):
    def test_empty_series(self):
        payload = compute_series_view({}, AggregationConfig())
        self.assertEqual(payload["points"], [])
        self.assertIsNone(payload["range"])
        self.assertIsNone(payload["kpis"]["latest_value"])
        self.assertEqual(payload["kpis_display"]["latest_value"], "—")

    def test_full_payload(self):
        cfg = AggregationConfig(view="rolling", mode="sum", window_days=7, range_days=60)
        payload = compute_series_view(_series(), cfg, preset=SERIES_PRESETS["generation"])
        self.assertEqual(
            payload["range"], {"from": "2024-05-01", "to": "2024-06-30", "label": "01/05/24 to 30/06/24"}
        )
        self.assertEqual(len(payload["points"]), 61)
        self.assertIsNotNone(payload["control_bands"]["value"])
        self.assertIsNotNone(payload["control_bands"]["yoy"])
        self.assertEqual(len(payload["monthly"]), 18)
        self.assertEqual([f["period_key"] for f in payload["fiscal_years"]], ["FY23", "FY24", "FY25"])
        self.assertLessEqual(len(payload["weekly"]), 104)
        self.assertTrue(all(w["label"].startswith("Week starting ") for w in payload["weekly"]))
        self.assertTrue(payload["kpis_display"]["latest_value"].endswith(" MU"))
        self.assertEqual(payload["charts"], {})

        months = [m["value"] for m in payload["monthly"]]
        self.assertAlmostEqual(payload["monthly_mean"], sum(months) / len(months))

        lo, hi = payload["axis_domains"]["left"]
        self.assertLess(lo, min(p["value"] for p in payload["points"]))
        self.assertGreater(hi, max(p["value"] for p in payload["points"]))

    def test_monthly_limit(self):
        cfg = AggregationConfig(view="monthly", monthly_limit=6)
        payload = compute_series_view(_series(), cfg)
        self.assertEqual([m["period_key"] for m in payload["monthly"]][-1], "2024-06")
        self.assertEqual(len(payload["monthly"]), 6)

    def test_chart_specs(self):
        cfg = AggregationConfig(view="daily", range_days=30)
        payload = compute_series_view(_series(), cfg, include_chart=True)
        spec = payload["charts"]["series"]
        self.assertIn("layer", spec)
        self.assertIn("$schema", spec)
        self.assertEqual(payload["charts"]["monthly"]["mark"]["type"], "bar")
        self.assertEqual(payload["charts"]["fiscal_years"]["mark"]["type"], "bar")


class TestCharts(unittest.TestCase):
    def test_empty_points(self):
        self.assertEqual(build_series_chart([]), {})

    def test_independent_axes(self):
        points = [ChartPoint("01-03-2024", "2024-03-01", 1.0, 0.5, 100.0), ChartPoint("02-03-2024", "2024-03-02", 2.0)]
        spec = build_series_chart(points, value_title="Demand")
        self.assertEqual(spec["resolve"]["scale"]["y"], "independent")


class TestComparisonView(unittest.TestCase):
    def test_defaults_to_first_two_columns(self):
        values = {c: {"2024-03-01": 1.0, "2024-03-04": 2.0} for c in ["A", "B", "C"]}
        sheet = SheetSeries("Prices", ["2024-03-01", "2024-03-04"], ["A", "B", "C"], values, "2024-03-04")
        companion = SheetSeries("PTB", ["2024-03-01"], ["A"], {"A": {"2024-03-01": 3.0}}, "2024-03-01")
        book = SpreadsheetBook(primary=sheet, companion=companion)
        anchor = {d: 4.0 for d in iter_days("2024-02-01", "2024-03-31")}

        payload = compute_comparison_view(anchor, book, window_days=7, show_days=4)
        self.assertEqual(payload["selected"], ["A", "B"])
        self.assertEqual(payload["anchor_date"], "2024-03-04")
        self.assertEqual(len(payload["rows"]), 4)
        self.assertEqual(payload["rows"][-1]["anchor_value"], 4.0)

        companion_payload = compute_comparison_view(anchor, book, use_companion=True, window_days=7, show_days=1)
        self.assertEqual(companion_payload["sheet"], "PTB")
        self.assertEqual(companion_payload["rows"][0]["values"], {"A": 3.0})


class TestAlignmentView(unittest.TestCase):
    def test_correlation(self):
        x = AlignedSeriesSpec("x", {"2024-03-01": 1.0, "2024-03-02": 2.0, "2024-03-03": 3.0})
        y = AlignedSeriesSpec("y", {"2024-03-01": 3.0, "2024-03-02": 2.0, "2024-03-03": 1.0})
        payload = compute_alignment_view([x, y], "2024-03-01", "2024-03-03", correlate=["x", "y"])
        self.assertEqual(payload["pair_count"], 3)
        self.assertAlmostEqual(payload["correlation"], -1.0)
        self.assertEqual(payload["rows"][0]["cells"]["x"]["value"], 1.0)



CAPACITY_CSV = """Month,Coal,Oil & Gas,Nuclear,Hydro,Solar,Wind,Small-Hydro,Bio Power
03/2023,210,25,7,47,67,42,5,10.5
04/2023,211,25,7,47,68,42,5,10.5
03/2024,215,25,8,47,82,45,5,10.5
04/2024,216,25,8,47,84,46,5,10.5
"""


class TestCapacityView(unittest.TestCase):
    def setUp(self):
        self.history = parse_capacity_history(CAPACITY_CSV)

    def test_empty_history(self):
        payload = compute_capacity_view(CapacityHistory(), AggregationConfig())
        self.assertIsNone(payload["latest_month"])
        self.assertIsNone(payload["rated"])
        self.assertEqual(payload["points"], [])

    def test_full_payload(self):
        payload = compute_capacity_view(self.history, AggregationConfig(range_days=365), plf_pct={"Coal": 50})
        self.assertEqual(payload["latest_month"], "2024-04")
        self.assertEqual(payload["range"]["label"], "02/04/23 to 01/04/24")
        self.assertEqual([p["key"] for p in payload["points"]], ["2024-03-01", "2024-04-01"])
        self.assertEqual(payload["points"][0]["label"], "01/03/2024")
        self.assertEqual(len(payload["history"]), 4)

        latest = payload["history_display"][-1]
        self.assertEqual(latest["total"], "441.50 GW")
        self.assertEqual(latest["yoy_pct"], "+6.26%")
        self.assertEqual(payload["history_display"][0]["mom_pct"], "—")

        self.assertEqual(payload["rated"]["installed"]["Coal"], 216.0)
        self.assertEqual(payload["rated"]["rated_total"], 108.0)
        self.assertEqual(payload["net_additions"]["start_month"], "2023-04")
        self.assertEqual(payload["net_additions"]["total"], 26.0)
        self.assertEqual(payload["charts"], {})

    def test_requested_months(self):
        payload = compute_capacity_view(
            self.history, AggregationConfig(), start_month="09/2023", end_month="2024-03", include_chart=True
        )
        self.assertEqual(payload["net_additions"]["start_month"], "2023-04")
        self.assertEqual(payload["net_additions"]["end_month"], "2024-03")
        self.assertEqual(payload["charts"]["net_additions"]["mark"]["type"], "bar")
        self.assertIn("layer", payload["charts"]["history"])
        with self.assertRaises(ValueError):
            compute_capacity_view(self.history, AggregationConfig(), start_month="junk")


if __name__ == "__main__":
    unittest.main()
