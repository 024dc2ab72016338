"""
Unit tests for portfolio aggregation.
"""

from unittest.mock import AsyncMock

import pytest

from kitebot.services.portfolio import (
    aggregate_portfolio,
    categorize_fund,
    fetch_portfolio,
    get_sector,
    normalize_positions,
)


def holding(symbol, qty, avg, ltp, **extra):
    return {"tradingsymbol": symbol, "exchange": "NSE", "quantity": qty,
            "average_price": avg, "last_price": ltp, **extra}


def mf(fund, qty, avg, ltp):
    return {"fund": fund, "tradingsymbol": "INF000", "quantity": qty,
            "average_price": avg, "last_price": ltp}


class TestSectorAndCategory:

    @pytest.mark.parametrize("symbol,sector", [
        ("INFY", "IT"),
        ("NSE:HDFCBANK", "Banking"),
        ("BSE:RELIANCE", "Energy"),
        ("UNKNOWNCO", "Other"),
        (None, "Other"),
    ])
    def test_get_sector(self, symbol, sector):
        assert get_sector(symbol) == sector

    @pytest.mark.parametrize("name,category", [
        ("Axis Bluechip Fund - Direct Growth", "Large Cap"),
        ("Kotak Emerging Equity Midcap Fund", "Mid Cap"),
        ("Parag Parikh Flexi Cap Fund", "Flexi Cap"),
        ("Mirae Asset Tax Saver Fund", "ELSS"),
        ("UTI Nifty 50 Index Fund", "Index Fund"),
        ("HDFC Corporate Bond Fund", "Debt"),
        ("ICICI Prudential Liquid Fund", "Liquid"),
        ("ICICI Prudential Balanced Advantage Fund", "Hybrid"),
        ("Some Thematic Fund", "Other"),
        (None, "Other"),
    ])
    def test_categorize_fund(self, name, category):
        assert categorize_fund(name) == category

    def test_first_rule_wins(self):
        # "large cap" is checked before "index"
        assert categorize_fund("Nifty Large Cap Index Fund") == "Large Cap"
        assert categorize_fund("Axis Bluechip Tax Saver") == "Large Cap"


class TestAggregate:

    def test_equity_and_mf_split(self):
        result = aggregate_portfolio(
            [holding("INFY", 10, 50, 60)],
            {"net": []},
            [mf("Axis Bluechip Fund", 10, 30, 40)],
        )
        s = result["portfolio_summary"]

        assert s["equity_value"] == 600
        assert s["mf_value"] == 400
        assert s["total_value"] == 1000
        assert s["equity_allocation_percent"] == 60
        assert s["mutual_fund_allocation_percent"] == 40
        assert s["top_holding_concentration_percent"] == 60
        assert s["top_3_concentration_percent"] == 100
        assert s["holdings_count"] == 2
        assert s["total_invested"] == 800
        assert s["unrealized_pnl"] == 200
        assert s["unrealized_pnl_percent"] == 25.0
        assert result["sector_exposure"] == {"IT": 600}
        assert result["mf_category_exposure"] == {"Large Cap": 400}

    def test_single_equity_holding(self):
        result = aggregate_portfolio([holding("TCS", 2, 300, 300)], None, None)
        s = result["portfolio_summary"]
        assert s["equity_allocation_percent"] == 100
        assert s["mutual_fund_allocation_percent"] == 0
        assert s["top_holding_concentration_percent"] == 100

    def test_two_way_equity_split(self):
        result = aggregate_portfolio(
            [holding("INFY", 6, 100, 100), holding("ITC", 4, 100, 100)], None, None
        )
        s = result["portfolio_summary"]
        assert s["equity_allocation_percent"] == 100
        assert s["top_holding_concentration_percent"] == 60

    def test_empty_portfolio(self):
        result = aggregate_portfolio([], {"net": []}, [])
        s = result["portfolio_summary"]
        assert s["total_value"] == 0
        assert s["equity_allocation_percent"] == 0
        assert s["mutual_fund_allocation_percent"] == 0
        assert s["top_holding_concentration_percent"] == 0
        assert s["unrealized_pnl_percent"] == 0
        assert s["holdings_count"] == 0
        assert result["top_5_holdings"] == []

    def test_reported_pnl_is_preferred(self):
        result = aggregate_portfolio([holding("INFY", 10, 50, 60, pnl=42)], None, None)
        assert result["holdings"][0]["pnl"] == 42

    def test_top_five_sorted_desc(self):
        eq = [holding(f"S{i}", 1, 10, 10 * i) for i in range(1, 8)]
        top = aggregate_portfolio(eq, None, None)["top_5_holdings"]
        assert [t["name"] for t in top] == ["S7", "S6", "S5", "S4", "S3"]
        assert all(t["type"] == "equity" for t in top)

    def test_positions_are_summarized_separately(self):
        positions = {"net": [
            {"tradingsymbol": "NIFTY24JANFUT", "product": "NRML", "quantity": -50, "last_price": 20, "pnl": -150},
            {"tradingsymbol": "SBIN", "product": "MIS", "quantity": 0, "last_price": 600, "pnl": 80},
        ]}
        result = aggregate_portfolio([holding("INFY", 1, 100, 100)], positions, None)
        s = result["portfolio_summary"]

        assert len(result["positions"]) == 1
        assert s["positions_exposure"] == 1000
        assert s["positions_pnl"] == -150
        assert s["total_value"] == 100


class TestNormalize:

    def test_zero_quantity_positions_dropped(self):
        assert normalize_positions({"net": [{"tradingsymbol": "X", "quantity": 0}]}) == []

    def test_missing_net_key(self):
        assert normalize_positions({"day": []}) == []


class TestFetchPortfolio:

    async def test_partial_failure_still_aggregates(self):
        kite = AsyncMock()
        kite.get_holdings.return_value = [holding("INFY", 10, 50, 60)]
        kite.get_positions.side_effect = RuntimeError("positions down")
        kite.get_mf_holdings.return_value = [mf("Axis Bluechip Fund", 10, 30, 40)]

        result = await fetch_portfolio(kite)

        assert result["portfolio_summary"]["total_value"] == 1000
        assert result["positions"] == []
