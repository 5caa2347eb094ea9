"""Investment accounts and holdings, valued against a stubbed quote provider."""

import pytest
from fastapi import HTTPException

from app.services import finance


def fake_quote(price, currency="INR"):
    def get_quote(symbol):
        return {"symbol": symbol, "price": price, "currency": currency}

    return get_quote


@pytest.fixture
def broker(client, alice):
    res = client.post("/investmentAccount/", json={"name": "Broker", "platform": "Zerodha"}, headers=alice)
    assert res.status_code == 201, res.text
    return res.json()


def buy(client, headers, account_id, symbol="abc", shares=10, price=100):
    res = client.post(
        "/investment/",
        json={"account": account_id, "symbol": symbol, "shares": shares, "purchase_price": price, "purchase_date": "2024-01-10"},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


class TestInvestmentAccounts:
    def test_defaults_to_preferred_currency(self, broker):
        assert broker["currency"] == "INR"
        assert broker["balance"] == 0.0

    def test_duplicate_name(self, client, alice, broker):
        assert client.post("/investmentAccount/", json={"name": "Broker"}, headers=alice).status_code == 409

    def test_private(self, client, bob, broker):
        assert client.get(f"/investmentAccount/{broker['id']}", headers=bob).status_code == 404

    def test_rename(self, client, alice, broker):
        res = client.put(f"/investmentAccount/{broker['id']}", json={"name": "Main broker"}, headers=alice)
        assert res.json()["message"] == "Investment Account updated successfully"
        assert client.get(f"/investmentAccount/{broker['id']}", headers=alice).json()["name"] == "Main broker"


class TestHoldings:
    def test_balance_follows_invested_amount(self, client, alice, broker):
        holding = buy(client, alice, broker["id"])
        assert holding["symbol"] == "ABC"
        assert client.get(f"/investmentAccount/{broker['id']}", headers=alice).json()["balance"] == 1000

        client.put(
            f"/investment/{holding['id']}",
            json={"shares": 5, "purchase_price": 120, "purchase_date": "2024-01-10"},
            headers=alice,
        )
        assert client.get(f"/investmentAccount/{broker['id']}", headers=alice).json()["balance"] == 600

        client.delete(f"/investment/{holding['id']}", headers=alice)
        assert client.get(f"/investmentAccount/{broker['id']}", headers=alice).json()["balance"] == 0

    def test_dividend_and_account_summary(self, client, alice, broker):
        holding = buy(client, alice, broker["id"])
        assert client.put(f"/investment/{holding['id']}/update-dividend", json={"dividend": 50}, headers=alice).status_code == 200

        summary = client.get(f"/investmentAccount/{broker['id']}/summary", headers=alice).json()
        assert summary["total_investment"] == 1000
        assert summary["total_dividend"] == 50
        assert summary["total_value"] == 1050

    def test_invalid_position(self, client, alice, broker):
        res = client.post(
            "/investment/",
            json={"account": broker["id"], "symbol": "ABC", "shares": 0, "purchase_price": 10, "purchase_date": "2024-01-10"},
            headers=alice,
        )
        assert res.status_code == 400

    def test_other_users_holdings(self, client, alice, bob, broker):
        holding = buy(client, alice, broker["id"])
        assert client.get(f"/investment/details/{holding['id']}", headers=bob).status_code == 404
        assert client.delete(f"/investment/{holding['id']}", headers=bob).status_code in (403, 404)


class TestPortfolio:
    def test_valued_at_market(self, client, alice, broker, monkeypatch):
        monkeypatch.setattr(finance, "get_quote", fake_quote(120.0))
        buy(client, alice, broker["id"])

        summary = client.get("/investment/portfolio-summary", headers=alice).json()
        assert summary["total_invested_amount"] == 1000
        assert summary["current_market_value"] == 1200
        assert summary["overall_gain_loss"] == 200
        assert summary["overall_gain_loss_percentage"] == 20.0
        assert summary["is_estimate"] is False

    def test_missing_quote_is_valued_at_cost(self, client, alice, broker, monkeypatch):
        def unavailable(symbol):
            raise HTTPException(status_code=404, detail="no data")

        monkeypatch.setattr(finance, "get_quote", unavailable)
        buy(client, alice, broker["id"])

        summary = client.get("/investment/portfolio-summary", headers=alice).json()
        assert summary["current_market_value"] == 1000
        assert summary["is_estimate"] is True

    def test_empty_portfolio(self, client, alice):
        summary = client.get("/investment/portfolio-summary", headers=alice).json()
        assert summary["number_of_holdings"] == 0
        assert summary["current_market_value"] == 0.0

    def test_historical_price_needs_a_date(self, client, alice):
        assert client.get("/investment/stocks/historical-price/ABC", headers=alice).status_code == 400
