"""
Unit tests for Telegram message formatting.
"""

import datetime as dt

import pytest

from kitebot.services import formatters as fmt
from kitebot.services.analyzer import AnalysisResult
from kitebot.services.credits import CreditInfo


@pytest.mark.parametrize("value,expected", [
    (1234567.5, "₹12,34,567.50"),
    (100000, "₹1,00,000.00"),
    (999, "₹999.00"),
    (-1500.256, "-₹1,500.26"),
    (0, "₹0.00"),
    (None, "₹0.00"),
])
def test_format_inr(value, expected):
    assert fmt.format_inr(value) == expected


@pytest.mark.parametrize("value,expected", [
    ("2024-01-15 10:30:00", "15 Jan 2024"),
    (dt.date(2023, 12, 1), "01 Dec 2023"),
    (None, "N/A"),
    ("not a date", "not a date"),
])
def test_format_date(value, expected):
    assert fmt.format_date(value) == expected


def test_truncate():
    assert fmt.truncate("abcdefghij", 8) == "abcde..."
    assert fmt.truncate("short", 8) == "short"
    assert fmt.truncate(None, 8) == ""


class TestPortfolioMessages:

    def test_holdings_total(self):
        text = fmt.format_holdings([
            {"tradingsymbol": "INFY", "quantity": 10, "average_price": 1500, "last_price": 1600, "pnl": 1000},
            {"tradingsymbol": "ITC", "quantity": 5, "average_price": 450, "last_price": 440, "pnl": -50},
        ])
        assert "*INFY*" in text
        assert "P&L: 🔴 -₹50.00" in text
        assert text.endswith("*Total P&L: 🟢 ₹950.00*")

    def test_balance_sections(self):
        text = fmt.format_balance({
            "equity": {"available": {"cash": 25000}, "utilised": {"debits": 500}, "net": 24500},
        })
        assert "Available Cash: ₹25,000.00" in text
        assert "*Commodity*" not in text

    def test_orders_limited_to_five(self):
        orders = [{"order_id": str(i), "status": "COMPLETE"} for i in range(8)]
        text = fmt.format_orders(orders)
        assert "`4`" in text
        assert "`5`" not in text

    def test_order_status(self):
        text = fmt.format_order_status({
            "status": "REJECTED", "tradingsymbol": "INFY", "transaction_type": "BUY",
            "order_type": "LIMIT", "filled_quantity": 0, "quantity": 10,
            "status_message": "Insufficient funds",
        })
        assert "*Order Status: REJECTED*" in text
        assert "Qty: 0/10" in text
        assert "Msg: Insufficient funds" in text
        assert "Avg Price" not in text


class TestMutualFundMessages:

    def test_mf_holdings_summary(self):
        text = fmt.format_mf_holdings([
            {"fund": "Axis Bluechip Fund", "folio": "123", "quantity": 10, "average_price": 30, "last_price": 40},
        ])
        assert "Invested: ₹300.00" in text
        assert "Current: ₹400.00" in text
        assert "Total P&L: 🟢 ₹100.00 (+33.33%)" in text

    def test_mf_orders_overflow_note(self):
        orders = [{"fund": "F", "order_id": str(i), "status": "OPEN", "amount": 1000} for i in range(7)]
        text = fmt.format_mf_orders(orders)
        assert text.count("🔄") == 5
        assert text.endswith("_Showing 5 of 7 orders_")

    def test_mf_order_details(self):
        text = fmt.format_mf_order({
            "status": "COMPLETE", "order_id": "abc", "fund": "HDFC Top 100", "tradingsymbol": "INF179",
            "transaction_type": "BUY", "amount": 5000, "quantity": 7.018, "average_price": 712.45,
            "order_timestamp": "2024-03-01 09:00:00", "folio": "F1",
        })
        assert "✅ Status: *COMPLETE*" in text
        assert "📦 Units: 7.018" in text
        assert "📅 Order Date: 01 Mar 2024" in text
        assert "📁 Folio: `F1`" in text

    def test_sips_hide_open_ended_pending(self):
        text = fmt.format_mf_sips([
            {"fund": "A", "status": "ACTIVE", "instalment_amount": 1000, "frequency": "monthly",
             "completed_instalments": 3, "pending_instalments": 9999},
            {"fund": "B", "status": "PAUSED", "instalment_amount": 500, "frequency": "weekly",
             "completed_instalments": 1, "pending_instalments": 11},
        ])
        assert "Frequency: Monthly" in text
        assert "⏸️ *B*" in text
        assert text.count("Pending:") == 1
        assert "Pending: 11 instalments" in text

    def test_search_results(self):
        results = [
            {"name": "HDFC Top 100 Fund", "tradingsymbol": "INF179", "amc": "HDFCMutualFund_MF",
             "minimum_purchase_amount": 5000, "last_price": 712.45, "scheme_type": "equity", "plan": "direct"},
        ]
        text = fmt.format_mf_search("hdfc", results, 4200)
        assert text.startswith('🔍 *MF Search Results for "hdfc"*')
        assert "🏢 AMC: HDFCMutualFund" in text
        assert "💰 Min Purchase: ₹5,000.00" in text
        assert text.endswith("_Showing 1 of 4200 cached funds_")


class TestAnalysisMessages:

    SUMMARY = {
        "total_value": 100000, "unrealized_pnl": 5000, "unrealized_pnl_percent": 5.26,
        "equity_allocation_percent": 70, "mutual_fund_allocation_percent": 30,
        "top_holding_concentration_percent": 25, "top_3_concentration_percent": 55,
    }
    ANALYSIS = {
        "diversification_score": 6, "risk_profile": "Moderate",
        "key_insights": ["one", "two", "three", "four"],
        "allocation_analysis": {"equity": "Heavy"},
        "risk_analysis": {"sector_risk": "High"},
        "improvement_suggestions": ["add debt"],
        "disclaimer": "Educational only.",
    }

    def test_brief_shows_three_insights(self):
        text = fmt.format_brief_analysis(AnalysisResult(False, None, self.SUMMARY, self.ANALYSIS))
        assert "Diversification Score: *6 / 10*" in text
        assert "₹1,00,000.00" in text
        assert "📊 P&L: 🟢 ₹5,000.00 (+5.26%)" in text
        assert "• three" in text
        assert "• four" not in text
        assert text.endswith("⚠️ _Educational only._")

    def test_detailed_splits_sections(self):
        messages = fmt.format_detailed_analysis(AnalysisResult(False, None, self.SUMMARY, self.ANALYSIS))
        assert len(messages) == 5
        assert "• Top 3 concentration: 55%" in messages[0]
        assert "4. four" in messages[1]
        assert "🏢 Sector Risk: *High*" in messages[2]
        assert "📈 Equity: *Heavy*" in messages[3]
        assert messages[4].endswith("⚠️ _Educational only._")

    def test_detailed_skips_empty_sections(self):
        messages = fmt.format_detailed_analysis(
            AnalysisResult(False, None, self.SUMMARY, {"risk_profile": "Aggressive"})
        )
        assert len(messages) == 1

    def test_credits(self):
        text = fmt.format_credits(CreditInfo(credits=7, total_used=3))
        assert "Available: *7* credits" in text
        assert "Total Used: 3 analyses" in text
        assert "Total analyses done: 10" in fmt.format_no_credits(CreditInfo(0, 10))
