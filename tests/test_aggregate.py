import unittest

from networth.pipeline.aggregate import (
    aggregate,
    build_snapshot,
    chain_breakdown,
    custody_breakdown,
    group_by_exposure,
    top_exposures,
    unpriced_assets,
)


def _holding(symbol, value, source="EVM", tier="SLOW", exposure="CRYPTO", asset_key=None, wallet_id="w1", price=1.0, quantity=1.0):
    return {
        "asset_key": asset_key or f"{source.lower()}:{symbol}:{wallet_id or ''}",
        "source": source,
        "wallet_id": wallet_id,
        "symbol": symbol,
        "quantity": quantity,
        "price_usd": price,
        "value_aud": value,
        "liquidity_tier": tier,
        "exposure_type": exposure,
    }


HOLDINGS = [
    _holding("USDC", 1000.0, tier="IMMEDIATE", exposure="STABLECOIN"),
    _holding("ETH", 9000.0, tier="FAST", exposure="ETH"),
    _holding("SOL", 2000.0, source="SOL", tier="FAST", wallet_id="w2"),
    _holding("Savings", 5000.0, source="BANK", tier="IMMEDIATE", exposure="CASH", asset_key="bank:m1", wallet_id=None, price=None),
    _holding("Cards", 3000.0, source="COLLECTIBLE", exposure="COLLECTIBLE", asset_key="collectible:m2", wallet_id=None, price=None),
]


class AggregateTests(unittest.TestCase):
    def test_totals_overlap(self):
        totals = aggregate(HOLDINGS)
        self.assertAlmostEqual(totals["total_aud"], 20000.0)
        self.assertAlmostEqual(totals["cash_aud"], 6000.0)
        self.assertAlmostEqual(totals["crypto_aud"], 12000.0)
        self.assertAlmostEqual(totals["collectibles_aud"], 3000.0)
        self.assertAlmostEqual(totals["evm_total_aud"], 10000.0)
        self.assertAlmostEqual(totals["sol_total_aud"], 2000.0)
        self.assertAlmostEqual(totals["manual_total_aud"], 8000.0)

    def test_chain_totals_cover_crypto(self):
        holdings = [h for h in HOLDINGS if h["source"] in ("EVM", "SOL")]
        totals = aggregate(holdings)
        self.assertAlmostEqual(totals["evm_total_aud"] + totals["sol_total_aud"], totals["crypto_aud"])
        self.assertAlmostEqual(totals["crypto_aud"], 12000.0)

    def test_empty(self):
        totals = aggregate([])
        self.assertEqual(totals["total_aud"], 0.0)
        self.assertEqual(totals["cash_aud"], 0.0)

    def test_snapshot_total_matches_holdings(self):
        snap = build_snapshot(HOLDINGS, 1.5, "2024-03-10T00:00:00Z", snapshot_id="s1")
        self.assertEqual(snap["id"], "s1")
        self.assertEqual(snap["created_at"], "2024-03-10T00:00:00+00:00")
        self.assertAlmostEqual(snap["total_aud"], sum(h["value_aud"] for h in snap["holdings"]))
        snap["holdings"][0]["value_aud"] = 0.0
        self.assertEqual(HOLDINGS[0]["value_aud"], 1000.0)

    def test_exposure_groups(self):
        groups = group_by_exposure(HOLDINGS)
        self.assertAlmostEqual(groups["CRYPTO"], 2000.0)
        self.assertAlmostEqual(groups["ETH"], 9000.0)


class BreakdownTests(unittest.TestCase):
    def setUp(self):
        self.snap = build_snapshot(HOLDINGS, 1.5, "2024-03-10T00:00:00Z", snapshot_id="s1")

    def test_top_exposures_sorted_with_share(self):
        rows = top_exposures(self.snap, limit=2)
        self.assertEqual([r["symbol"] for r in rows], ["ETH", "Savings"])
        self.assertAlmostEqual(rows[0]["percent_of_portfolio"], 0.45)

    def test_top_exposures_group_by_key(self):
        snap = build_snapshot([_holding("ETH", 10.0), _holding("ETH", 5.0)], 1.5, "2024-03-10T00:00:00Z")
        rows = top_exposures(snap)
        self.assertEqual(len(rows), 1)
        self.assertAlmostEqual(rows[0]["value_aud"], 15.0)

    def test_chain_breakdown_skips_empty_chains(self):
        rows = chain_breakdown(self.snap)
        self.assertEqual([r["chain"] for r in rows], ["EVM", "Solana", "Manual"])
        snap = build_snapshot([_holding("ETH", 10.0)], 1.5, "2024-03-10T00:00:00Z")
        self.assertEqual([r["chain"] for r in chain_breakdown(snap)], ["EVM"])

    def test_custody_labels(self):
        rows = custody_breakdown(self.snap, wallets=[{"id": "w1", "label": "Ledger"}])
        labels = {r["label"]: r["value_aud"] for r in rows}
        self.assertAlmostEqual(labels["Ledger"], 10000.0)
        self.assertAlmostEqual(labels["Manual Assets"], 8000.0)
        self.assertAlmostEqual(labels["Unknown"], 2000.0)

    def test_unpriced(self):
        snap = build_snapshot(
            [_holding("BONK", 0.0, source="SOL", price=None, quantity=5), _holding("BONK", 0.0, source="SOL", price=None, quantity=7)],
            1.5, "2024-03-10T00:00:00Z",
        )
        rows = unpriced_assets(snap)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["quantity"], 12.0)
        self.assertEqual(rows[0]["source"], "SOL")


if __name__ == "__main__":
    unittest.main()
