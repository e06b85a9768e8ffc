"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from fxpulse.config import Settings
from fxpulse.dashboard import Dashboard
from fxpulse.main import create_app
from fxpulse_core.models import WeightConfig

T0 = 1704067200


@pytest.fixture
def dashboard():
    settings = Settings(_env_file=None, recompute_debounce=0)
    dashboard = Dashboard(settings, weights=WeightConfig())
    for consumer in dashboard.consumers.values():
        consumer.start()
    return dashboard


@pytest.fixture
def client(dashboard):
    app = create_app(dashboard.settings, dashboard=dashboard)
    with TestClient(app) as client:
        yield client


def route_bars(dashboard, symbol, closes):
    data = [
        {"time": T0 + i * 3600, "open": c, "high": c + 0.001, "low": c - 0.001, "close": c}
        for i, c in enumerate(closes)
    ]
    dashboard.router.route_message({"type": "initial_ohlc", "symbol": symbol, "timeframe": "H1", "data": data})


def route_rsi(dashboard, symbol, value):
    dashboard.router.route_message(
        {"type": "indicator_update", "symbol": symbol, "timeframe": "H1", "indicators": {"rsi": {"14": value}}}
    )


class TestStatus:
    def test_health(self, client):
        """Health check always answers."""
        assert client.get("/health").json() == {"status": "healthy"}

    def test_status(self, client):
        """Status reports the feed and every consumer."""
        response = client.get("/api/status")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "disconnected"
        assert body["transport"]["is_connected"] is False
        assert body["consumers"] == ["heatmap", "strength", "tracker", "correlation"]
        assert body["active_timeframe"] == "1H"

    def test_router_stats(self, client):
        """Router stats count the registered consumers."""
        stats = client.get("/api/router/stats").json()
        assert stats["total_consumers"] == 4
        assert "indicator_update" in stats["routes"]


class TestBars:
    def test_bars(self, client, dashboard):
        """Bars are returned oldest first, trimmed to the limit."""
        route_bars(dashboard, "EURUSDm", [1.10, 1.11, 1.12])
        response = client.get("/api/consumers/tracker/bars/EURUSDm/1H", params={"limit": 2})
        assert response.status_code == 200
        body = response.json()
        assert body["timeframe"] == "1H"
        assert body["count"] == 2
        assert [b["close"] for b in body["bars"]] == [1.11, 1.12]

    def test_unknown_symbol_is_empty(self, client):
        """An unseen symbol gives an empty list."""
        body = client.get("/api/consumers/heatmap/bars/XAUUSDm/H1").json()
        assert body["count"] == 0
        assert body["bars"] == []

    def test_unknown_consumer(self, client):
        """An unknown consumer name is a 404."""
        assert client.get("/api/consumers/news/bars/EURUSDm/H1").status_code == 404


class TestHeatmap:
    def test_no_data(self, client):
        """Without snapshots every cell is no_data."""
        body = client.get("/api/heatmap/EURUSDm").json()
        assert body["result"]["has_data"] is False
        assert body["result"]["zone"] == "wait"
        assert body["cells"]["1H"]["RSI"]["signal"] == "no_data"
        assert body["cells"]["1H"]["RSI"]["score"] is None

    def test_with_indicators(self, client, dashboard):
        """Style overrides apply to a single request."""
        dashboard.router.route_message(
            {
                "type": "indicator_update",
                "symbol": "EURUSDm",
                "timeframe": "H1",
                "bar_time": T0,
                "indicators": {"close": 1.09, "rsi": {"14": 30.0}},
            }
        )
        body = client.get("/api/heatmap/EURUSDm", params={"trading_style": "swingTrader"}).json()
        assert body["trading_style"] == "swingTrader"
        assert body["cells"]["1H"]["RSI"]["signal"] == "sell"
        assert body["result"]["total_cells"] == 1
        assert body["result"]["final_score"] < 0

    def test_unknown_style(self, client):
        """An unknown trading style is a 400."""
        response = client.get("/api/heatmap/EURUSDm", params={"trading_style": "hodler"})
        assert response.status_code == 400

    def test_unknown_weighting(self, client):
        """An unknown weighting scheme is a 400."""
        response = client.get("/api/heatmap/EURUSDm", params={"indicator_weighting": "vibes"})
        assert response.status_code == 400


class TestStrength:
    def test_neutral_without_data(self, client):
        """Every currency is neutral before data arrives."""
        body = client.get("/api/strength").json()
        assert body["mode"] == "closed"
        assert set(body["strength"].values()) == {50.0}
        assert body["server_strength"] is None

    def test_closed_mode(self, client, dashboard):
        """Closed mode ranks currencies from bar closes."""
        route_bars(dashboard, "GBPUSDm", [1.25, 1.26])
        body = client.get("/api/strength", params={"mode": "closed"}).json()
        assert body["strength"]["GBP"] == 90.0
        assert body["strength"]["USD"] == 10.0

    def test_invalid_mode(self, client):
        """Unknown modes fail validation."""
        assert client.get("/api/strength", params={"mode": "weekly"}).status_code == 422


class TestCorrelation:
    def test_empty_without_data(self, client):
        """No pairs are listed before RSI data arrives."""
        body = client.get("/api/correlation").json()
        assert body["pairs"] == []
        assert (body["oversold"], body["overbought"]) == (30.0, 70.0)
        assert body["timeframe"] == "1H"

    def test_pairs_and_status_filter(self, client, dashboard):
        """Pairs carry their status and can be filtered by it."""
        route_rsi(dashboard, "EURUSDm", 75.0)
        route_rsi(dashboard, "GBPUSDm", 78.0)
        route_rsi(dashboard, "USDCHFm", 74.0)

        pairs = {p["pair"]: p for p in client.get("/api/correlation").json()["pairs"]}
        assert pairs["EURUSD_GBPUSD"]["status"] == "match"
        assert pairs["EURUSD_GBPUSD"]["correlation"] == "positive"
        assert pairs["GBPUSD_USDCHF"]["status"] == "mismatch"

        body = client.get("/api/correlation", params={"status": "mismatch"}).json()
        assert [p["pair"] for p in body["pairs"]] == ["GBPUSD_USDCHF"]

    def test_invalid_status(self, client):
        """Unknown status filters fail validation."""
        assert client.get("/api/correlation", params={"status": "maybe"}).status_code == 422


class TestWithoutDashboard:
    def test_503_before_start(self):
        """API routes answer 503 until the dashboard exists."""
        app = create_app(Settings(_env_file=None))
        client = TestClient(app)  # lifespan not run
        assert client.get("/api/status").status_code == 503
