import unittest
from datetime import datetime, timedelta, timezone

from networth.pipeline.analytics import (
    analytics_report,
    drawdown_series,
    filter_by_time_range,
    monthly_heatmap,
    monthly_returns,
    period_returns,
    portfolio_metrics,
    risk_metrics,
    snapshot_frame,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _snapshot(snapshot_id, total, days=0, at=None):
    created = at or START + timedelta(days=days)
    return {"id": snapshot_id, "created_at": created.isoformat(), "total_aud": total}


HISTORY = [
    _snapshot("d0", 100.0, days=0),
    _snapshot("d1", 150.0, days=31),
    _snapshot("d2", 90.0, days=60),
]


class FrameTests(unittest.TestCase):
    def test_sorts_and_dedupes(self):
        shuffled = [HISTORY[2], HISTORY[0], HISTORY[1], dict(HISTORY[1], total_aud=151.0)]
        df = snapshot_frame(shuffled)
        self.assertEqual(list(df["id"]), ["d0", "d1", "d2"])
        self.assertEqual(float(df["total_aud"].iloc[1]), 151.0)

    def test_input_not_mutated(self):
        history = [dict(s) for s in HISTORY]
        portfolio_metrics(list(reversed(history)))
        self.assertEqual(history, HISTORY)


class MetricsTests(unittest.TestCase):
    def test_high_low_and_drawdown(self):
        metrics = portfolio_metrics(HISTORY)
        self.assertEqual(metrics["all_time_high"]["value"], 150.0)
        self.assertEqual(metrics["all_time_high"]["snapshot_id"], "d1")
        self.assertEqual(metrics["all_time_low"]["value"], 90.0)
        self.assertEqual(metrics["all_time_low"]["snapshot_id"], "d2")
        self.assertEqual(metrics["current_net_worth"], 90.0)
        self.assertAlmostEqual(metrics["total_change"]["value"], -10.0)
        self.assertAlmostEqual(metrics["total_change"]["percent"], -10.0)
        self.assertAlmostEqual(risk_metrics(HISTORY)["max_drawdown"]["percent"], -40.0)

    def test_order_does_not_matter(self):
        self.assertEqual(portfolio_metrics(HISTORY), portfolio_metrics(list(reversed(HISTORY))))

    def test_first_high_wins_ties(self):
        history = [_snapshot("a", 100.0, 0), _snapshot("b", 100.0, 1)]
        self.assertEqual(portfolio_metrics(history)["all_time_high"]["snapshot_id"], "a")

    def test_cagr(self):
        history = [_snapshot("a", 100.0, at=START), _snapshot("b", 200.0, at=START + timedelta(days=365.25))]
        self.assertAlmostEqual(portfolio_metrics(history)["cagr"], 100.0)

    def test_cagr_undefined_cases(self):
        self.assertEqual(portfolio_metrics([_snapshot("a", 100.0)])["cagr"], 0.0)
        self.assertEqual(portfolio_metrics([_snapshot("a", 0.0, 0), _snapshot("b", 100.0, 400)])["cagr"], 0.0)

    def test_cagr_total_loss(self):
        history = [_snapshot("a", 100.0, 0), _snapshot("b", 0.0, 30)]
        self.assertEqual(portfolio_metrics(history)["cagr"], -100.0)

    def test_cagr_past_float_range_is_none(self):
        history = [_snapshot("a", 10.0, 0), _snapshot("b", 1000.0, 1)]
        metrics = portfolio_metrics(history)
        self.assertIsNone(metrics["cagr"])
        self.assertEqual(metrics["total_change"]["percent"], 9900.0)
        report = analytics_report([_snapshot("a", 10.0, 0), _snapshot("b", 1000.0, 2)], "ALL")
        self.assertIsNone(report["metrics"]["cagr"])

    def test_empty_history(self):
        metrics = portfolio_metrics([])
        self.assertEqual(metrics["current_net_worth"], 0.0)
        self.assertIsNone(metrics["all_time_high"]["date"])
        self.assertEqual(period_returns([]), [])
        self.assertEqual(drawdown_series([]), [])
        self.assertEqual(monthly_returns([]), [])


class PeriodReturnTests(unittest.TestCase):
    def test_anchors(self):
        history = [_snapshot("a", 100.0, 0), _snapshot("b", 110.0, 20), _snapshot("c", 120.0, 40)]
        rows = {r["period"]: r for r in period_returns(history)}
        self.assertEqual(rows["Last 7 days"]["start"], 110.0)
        self.assertEqual(rows["Last 30 days"]["start"], 100.0)
        self.assertEqual(rows["Last 90 days"]["start"], 100.0)
        self.assertEqual(rows["Since inception"]["start"], 100.0)
        self.assertAlmostEqual(rows["Since inception"]["percent"], 20.0)
        self.assertEqual(rows["Last 7 days"]["end"], 120.0)

    def test_single_snapshot_has_no_periods(self):
        self.assertEqual(period_returns([_snapshot("a", 100.0)]), [])


class DrawdownTests(unittest.TestCase):
    def test_series_never_positive(self):
        series = drawdown_series(HISTORY)
        self.assertEqual(len(series), 3)
        self.assertTrue(all(point["drawdown"] <= 0 for point in series))
        self.assertAlmostEqual(series[-1]["drawdown"], -40.0)

    def test_zero_at_each_new_peak(self):
        values = [100.0, 120.0, 110.0, 130.0, 90.0, 140.0, 135.0]
        history = [_snapshot(f"p{i}", value, days=i) for i, value in enumerate(values)]
        series = drawdown_series(history)
        peak = 0.0
        for value, point in zip(values, series):
            if value > peak:
                peak = value
                self.assertEqual(point["drawdown"], 0.0)
            else:
                self.assertLess(point["drawdown"], 0.0)

    def test_risk_metrics(self):
        risk = risk_metrics(HISTORY)
        self.assertEqual(risk["best_step"]["value"], 50.0)
        self.assertEqual(risk["best_step"]["date"], HISTORY[1]["created_at"])
        self.assertEqual(risk["worst_step"]["value"], -60.0)
        self.assertAlmostEqual(risk["avg_step_change"], -5.0)
        self.assertEqual(risk["steps_up"], 1)
        self.assertEqual(risk["steps_down"], 1)
        self.assertAlmostEqual(risk["current_drawdown"], -40.0)
        self.assertEqual(risk["max_drawdown"]["peak"], 150.0)
        self.assertEqual(risk["max_drawdown"]["trough"], 90.0)

    def test_risk_metrics_needs_two_points(self):
        risk = risk_metrics([_snapshot("a", 100.0)])
        self.assertEqual(risk["max_drawdown"]["percent"], 0.0)
        self.assertEqual(risk["steps_up"], 0)


class MonthlyTests(unittest.TestCase):
    def setUp(self):
        self.history = [
            _snapshot("a", 100.0, at=datetime(2024, 1, 5, tzinfo=timezone.utc)),
            _snapshot("b", 110.0, at=datetime(2024, 1, 25, tzinfo=timezone.utc)),
            _snapshot("c", 121.0, at=datetime(2024, 2, 10, tzinfo=timezone.utc)),
            _snapshot("d", 108.9, at=datetime(2024, 3, 3, tzinfo=timezone.utc)),
        ]

    def test_month_end_returns(self):
        rows = monthly_returns(self.history)
        self.assertEqual([(r["year"], r["month"]) for r in rows], [(2024, 2), (2024, 3)])
        self.assertAlmostEqual(rows[0]["return"], 10.0)
        self.assertAlmostEqual(rows[1]["return"], -10.0)

    def test_heatmap(self):
        grid = monthly_heatmap(self.history)
        self.assertEqual(len(grid), 1)
        self.assertEqual(grid[0]["year"], 2024)
        self.assertIsNone(grid[0]["months"][0])
        self.assertAlmostEqual(grid[0]["months"][1], 10.0)
        self.assertEqual(len(grid[0]["months"]), 12)


class RangeTests(unittest.TestCase):
    def test_window(self):
        window = filter_by_time_range(HISTORY, "1M")
        self.assertEqual([s["id"] for s in window], ["d1", "d2"])
        self.assertEqual(filter_by_time_range(HISTORY, "ALL"), HISTORY)

    def test_unknown_range(self):
        with self.assertRaises(ValueError):
            filter_by_time_range(HISTORY, "2W")

    def test_report_uses_full_history_for_periods(self):
        report = analytics_report(HISTORY, "1M")
        self.assertEqual(report["snapshot_count"], 2)
        self.assertEqual(report["metrics"]["all_time_high"]["value"], 150.0)
        inception = [r for r in report["period_returns"] if r["period"] == "Since inception"][0]
        self.assertEqual(inception["start"], 100.0)

    def test_deterministic(self):
        self.assertEqual(analytics_report(HISTORY), analytics_report(HISTORY))


if __name__ == "__main__":
    unittest.main()
