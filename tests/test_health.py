import unittest
from datetime import datetime, timedelta, timezone

from networth.pipeline.health import (
    action_items,
    concentration_score,
    diversification_score,
    health_scores,
    liquidity_score,
    overall_color,
    risk_narrative,
    volatility_score,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _holding(symbol, value, tier="FAST", exposure="CRYPTO", source="EVM"):
    return {"symbol": symbol, "value_aud": value, "liquidity_tier": tier, "exposure_type": exposure, "source": source}


def _history(*totals):
    return [
        {"id": f"s{i}", "created_at": (START + timedelta(days=7 * i)).isoformat(), "total_aud": total}
        for i, total in enumerate(totals)
    ]


class LiquidityScoreTests(unittest.TestCase):
    def test_excellent(self):
        holdings = [_holding("USDC", 60000.0, tier="IMMEDIATE"), _holding("ETH", 40000.0)]
        result = liquidity_score(holdings, 100000.0, 2000.0)
        self.assertEqual(result["score"], 85)
        self.assertEqual(result["months_runway"], 30)
        self.assertEqual(result["liquid_percent"], 60.0)
        self.assertEqual(result["explanation"], "Excellent liquidity with 30 months runway")

    def test_low(self):
        holdings = [_holding("USDC", 2000.0, tier="IMMEDIATE"), _holding("HOUSE", 98000.0, tier="SLOW")]
        result = liquidity_score(holdings, 100000.0, 1000.0)
        self.assertEqual(result["score"], 12)
        self.assertEqual(result["explanation"], "Low liquidity with only 2 months runway")

    def test_no_burn(self):
        result = liquidity_score([_holding("ETH", 100.0)], 100.0, 0.0)
        self.assertEqual(result["months_runway"], 999)
        self.assertEqual(result["score"], 79)


class ConcentrationScoreTests(unittest.TestCase):
    def test_very_high_concentration_formula(self):
        holdings = [_holding("AAA", 40.0), _holding("BBB", 30.0), _holding("CCC", 30.0)]
        result = concentration_score(holdings, 100.0)
        self.assertEqual(result["top_holding_percent"], 40.0)
        self.assertEqual(result["top3_percent"], 100.0)
        self.assertEqual(result["score"], 20)
        self.assertEqual(result["explanation"], "Very high concentration, top asset is 40%")

    def test_groups_by_symbol(self):
        holdings = [_holding("ETH", 30.0), _holding("ETH", 30.0), _holding("BTC", 40.0)]
        self.assertEqual(concentration_score(holdings, 100.0)["top_holding_percent"], 60.0)

    def test_well_diversified(self):
        holdings = [_holding(f"T{i}", 10.0) for i in range(10)]
        result = concentration_score(holdings, 100.0)
        self.assertEqual(result["score"], 90)

    def test_empty(self):
        self.assertEqual(concentration_score([], 0.0)["score"], 100)


class DiversificationScoreTests(unittest.TestCase):
    def test_excellent(self):
        exposures = ["BTC", "ETH", "CASH", "EQUITY", "REAL_ESTATE"]
        holdings = [_holding(e, 20.0, exposure=e) for e in exposures]
        result = diversification_score(holdings, 100.0)
        self.assertEqual(result["score"], 80)
        self.assertEqual(result["asset_class_count"], 5)
        self.assertEqual(result["top_class_percent"], 20.0)

    def test_single_class(self):
        result = diversification_score([_holding("ETH", 100.0, exposure="ETH")], 100.0)
        self.assertEqual(result["score"], 10)
        self.assertEqual(result["explanation"], "Very limited: only 1 asset class with 100% concentration")


class VolatilityScoreTests(unittest.TestCase):
    def test_insufficient_history(self):
        result = volatility_score(_history(100.0))
        self.assertEqual(result["score"], 100)
        self.assertEqual(result["explanation"], "Insufficient history to calculate volatility")

    def test_steady_growth(self):
        self.assertEqual(volatility_score(_history(100.0, 101.0, 102.0))["score"], 100)

    def test_deep_drawdown(self):
        result = volatility_score(_history(100.0, 200.0, 100.0))
        self.assertEqual(result["max_drawdown"], 50.0)
        self.assertEqual(result["monthly_variance"], 75.0)
        self.assertEqual(result["score"], 35)
        self.assertEqual(result["explanation"], "Very high volatility with 50% max drawdown")


class OverallTests(unittest.TestCase):
    def test_colors(self):
        self.assertEqual(overall_color(49), "red")
        self.assertEqual(overall_color(50), "yellow")
        self.assertEqual(overall_color(69), "yellow")
        self.assertEqual(overall_color(70), "green")

    def test_weighted_average(self):
        holdings = [_holding("USDC", 60000.0, tier="IMMEDIATE", exposure="STABLECOIN"), _holding("ETH", 40000.0, exposure="ETH")]
        scores = health_scores(holdings, 100000.0, 2000.0, _history(100.0))
        parts = [scores[k]["score"] for k in ("liquidity", "concentration", "diversification", "volatility")]
        self.assertTrue(all(0 <= p <= 100 for p in parts))
        self.assertAlmostEqual(scores["overall"]["score"], sum(parts) / 4, delta=0.5)
        self.assertEqual(scores["overall"]["color"], overall_color(scores["overall"]["score"]))

    def test_deterministic(self):
        holdings = [_holding("ETH", 100.0)]
        self.assertEqual(
            health_scores(holdings, 100.0, 10.0, _history(1.0, 2.0)),
            health_scores(holdings, 100.0, 10.0, _history(1.0, 2.0)),
        )


class NarrativeTests(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(risk_narrative([], 0.0), "No holdings to analyze.")

    def test_crypto_heavy(self):
        holdings = [_holding("SOL", 80.0), _holding("USDC", 20.0, exposure="STABLECOIN")]
        text = risk_narrative(holdings, 100.0)
        self.assertTrue(text.startswith("Your portfolio is currently positioned for: "))
        self.assertIn("continued crypto bull market", text)
        self.assertIn("outsized performance from SOL", text)

    def test_action_items_capped(self):
        holdings = [_holding("SOL", 100.0)]
        scores = health_scores(holdings, 100.0, 1000.0, _history(100.0, 200.0, 100.0))
        items = action_items(holdings, 100.0, scores)
        self.assertLessEqual(len(items), 3)
        self.assertTrue(items[0].startswith("Liquidity is low"))

    def test_action_items_default(self):
        scores = {
            "liquidity": {"score": 90, "months_runway": 30},
            "concentration": {"score": 90},
            "diversification": {"score": 90},
            "volatility": {"score": 90, "max_drawdown": 0.0},
        }
        self.assertEqual(action_items([], 0.0, scores), ["No immediate actions recommended. Portfolio health is good."])


if __name__ == "__main__":
    unittest.main()
