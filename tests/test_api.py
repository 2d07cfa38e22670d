import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from networth.config import settings
from networth.main import app


class ApiTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self._paths = (settings.db_path, settings.cache_db_path)
        settings.db_path = str(Path(self.tmp.name) / "networth.db")
        settings.cache_db_path = str(Path(self.tmp.name) / "cache.sqlite3")
        self.client = TestClient(app)

    def tearDown(self):
        settings.db_path, settings.cache_db_path = self._paths
        self.tmp.cleanup()

    def _snapshot(self):
        return self.client.post("/snapshots", json={
            "holdings": [{"source": "EVM", "symbol": "USDC", "quantity": 1000, "price_usd": 1, "wallet_id": "w1"}],
            "prices": {"ETH": 3000},
        })

    def test_health_on_empty_db(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ok": True, "db": "ok", "latest_snapshot": None})

    def test_settings(self):
        self.assertEqual(self.client.get("/settings").json()["monthly_burn_aud"], 5000.0)
        resp = self.client.post("/settings", json={"monthlyBurnAud": 3000})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["monthly_burn_aud"], 3000.0)
        self.assertEqual(self.client.post("/settings", json={"haircutFast": 2}).status_code, 400)

    def test_manual_assets(self):
        resp = self.client.post("/manual-assets", json={"type": "BANK", "name": "Savings", "value_aud": 10000})
        self.assertEqual(resp.status_code, 201)
        asset_id = resp.json()["id"]
        resp = self.client.put(f"/manual-assets/{asset_id}", json={"type": "BANK", "name": "Offset", "value_aud": 12000})
        self.assertEqual(resp.json()["native_amount"], 12000.0)
        self.assertEqual(self.client.put("/manual-assets/nope", json={"type": "BANK", "name": "x"}).status_code, 404)
        self.assertEqual(self.client.post("/manual-assets", json={"type": "SOL", "name": "x"}).status_code, 400)
        self.assertEqual(self.client.delete(f"/manual-assets/{asset_id}").status_code, 200)
        self.assertEqual(self.client.delete(f"/manual-assets/{asset_id}").status_code, 404)
        self.assertEqual(self.client.get("/manual-assets").json(), {"assets": []})

    def test_calculate_does_not_persist(self):
        self.client.post("/manual-assets", json={"type": "COLLECTIBLE", "name": "Punk", "value_aud": 2, "currency": "ETH"})
        resp = self.client.post("/calculate", json={"holdings": [], "prices": {"ETH": 3000}})
        self.assertEqual(resp.status_code, 200)
        self.assertAlmostEqual(resp.json()["snapshot"]["total_aud"], 9000.0)
        self.assertEqual(self.client.get("/snapshots").json()["total"], 0)

    def test_snapshot_flow(self):
        self.client.post("/manual-assets", json={"type": "BANK", "name": "Savings", "value_aud": 10000})
        resp = self._snapshot()
        self.assertEqual(resp.status_code, 201)
        snap = resp.json()["snapshot"]
        self.assertAlmostEqual(snap["total_aud"], 11500.0)

        again = self._snapshot()
        self.assertEqual(again.status_code, 429)
        self.assertEqual(again.json()["detail"]["next_snapshot_allowed_in_hours"], 48)
        self.assertEqual(again.json()["detail"]["last_snapshot_id"], snap["id"])

        detail = self.client.get(f"/snapshots/{snap['id']}").json()
        self.assertEqual(len(detail["snapshot"]["holdings"]), 2)
        self.assertEqual(self.client.get("/snapshots/nope").status_code, 404)
        self.assertEqual(self.client.get("/health").json()["latest_snapshot"]["id"], snap["id"])

        liquidity = self.client.get("/liquidity").json()
        self.assertEqual([b["tier"] for b in liquidity["buckets"]], ["IMMEDIATE", "FAST", "SLOW"])
        self.assertEqual(len(liquidity["scenarios"]), 4)

        self.assertEqual(self.client.get("/analytics", params={"range": "1m"}).status_code, 200)
        self.assertEqual(self.client.get("/analytics", params={"range": "2W"}).status_code, 400)
        self.assertIn("overall", self.client.get("/health-scores").json())

        brief = self.client.post("/briefs", json={"type": "weekly"})
        self.assertEqual(brief.status_code, 201)
        self.assertEqual(len(self.client.get("/briefs").json()["briefs"]), 1)
        self.assertEqual(self.client.get(f"/briefs/{brief.json()['id']}").json()["report_type"], "weekly")
        markdown = self.client.get("/briefs/latest/markdown")
        self.assertTrue(markdown.text.startswith("## Portfolio Brief - "))
        self.assertEqual(self.client.delete(f"/briefs/{brief.json()['id']}").status_code, 200)
        self.assertEqual(self.client.get(f"/briefs/{brief.json()['id']}").status_code, 404)

    def test_empty_history(self):
        self.assertEqual(self.client.get("/liquidity").status_code, 404)
        self.assertEqual(self.client.post("/briefs", json={"type": "weekly"}).status_code, 400)
        self.assertEqual(self.client.post("/briefs", json={"type": "monthly"}).status_code, 422)
        self.assertEqual(self.client.get("/analytics").json()["snapshot_count"], 0)

    def test_import(self):
        resp = self.client.post("/snapshots/import", json={"snapshots": [
            {"date": "1/2/2024", "totalAud": 5000},
            {"date": "2024-03-01", "total_aud": 5500},
        ]})
        self.assertEqual(resp.json()["imported"], 2)
        self.assertEqual(self.client.get("/snapshots").json()["total"], 2)
        self.assertEqual(self.client.post("/snapshots/import", json={"snapshots": []}).status_code, 400)

    def test_analytics_with_unbounded_cagr(self):
        self.client.post("/snapshots/import", json={"snapshots": [
            {"date": "2024-01-01", "total_aud": 10},
            {"date": "2024-01-02", "total_aud": 1000},
        ]})
        resp = self.client.get("/analytics")
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.json()["metrics"]["cagr"])


if __name__ == "__main__":
    unittest.main()
