"""Categories, budgets, saving goals and debts."""

from datetime import datetime

import pytest
from fastapi import HTTPException

from app.services import debts
from conftest import default_account_id, make_user


def food_category(client, headers):
    res = client.post("/category/", json={"name": "Food"}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["id"]


def spend(client, headers, account_id, amount, category=None):
    client.post(
        "/transactions/",
        json={"text": "Income", "amount": amount, "is_income": True, "account": account_id},
        headers=headers,
    )
    res = client.post(
        "/transactions/",
        json={"text": "Spend", "amount": amount, "is_income": False, "account": account_id, "category": category},
        headers=headers,
    )
    assert res.status_code == 201, res.text


class TestCategories:
    def test_crud(self, client, alice):
        category_id = food_category(client, alice)
        assert client.post("/category/", json={"name": "Food"}, headers=alice).status_code == 409

        res = client.put(f"/category/{category_id}", json={"name": "Groceries"}, headers=alice)
        assert res.status_code == 200
        names = [c["name"] for c in client.get("/category/", params={"q": "groc"}, headers=alice).json()["categories"]]
        assert names == ["Groceries"]

        assert client.delete(f"/category/{category_id}", headers=alice).status_code == 200

    def test_in_use_category_cannot_be_deleted(self, client, alice):
        category_id = food_category(client, alice)
        spend(client, alice, default_account_id(client, alice), 10, category_id)
        assert client.delete(f"/category/{category_id}", headers=alice).status_code == 400

    def test_foreign_category(self, client, alice, bob):
        category_id = food_category(client, alice)
        assert client.put(f"/category/{category_id}", json={"name": "Mine"}, headers=bob).status_code == 404


class TestBudgets:
    def test_progress_and_summary(self, client, alice):
        now = datetime.now()
        category_id = food_category(client, alice)
        res = client.post(
            "/budget/",
            json={"category_id": category_id, "month": now.month, "year": now.year, "amount": 200},
            headers=alice,
        )
        assert res.status_code == 201
        budget_id = res.json()["data"]["id"]

        spend(client, alice, default_account_id(client, alice), 50, category_id)

        progress = client.get(f"/budget/{budget_id}/progress", headers=alice).json()
        assert progress["total_spent"] == 50
        assert progress["remaining_amount"] == 150
        assert progress["progress"] == 25.0
        assert progress["category_name"] == "Food"

        by_name = client.get("/budget/progress/by-category", params={"name": "food"}, headers=alice).json()
        assert by_name["budget_id"] == budget_id

        summary = client.get("/budget/summary", params={"month": now.month, "year": now.year}, headers=alice).json()
        assert summary["total_budgeted"] == 200
        assert summary["total_spent"] == 50
        assert summary["data"][0]["actual_spend"] == 50

    def test_duplicate_budget(self, client, alice):
        category_id = food_category(client, alice)
        body = {"category_id": category_id, "month": 1, "year": 2024, "amount": 100}
        assert client.post("/budget/", json=body, headers=alice).status_code == 201
        assert client.post("/budget/", json=body, headers=alice).status_code == 409

    def test_invalid_period(self, client, alice):
        category_id = food_category(client, alice)
        body = {"category_id": category_id, "month": 13, "year": 2024, "amount": 100}
        assert client.post("/budget/", json=body, headers=alice).status_code == 400

    def test_update_list_delete(self, client, alice):
        category_id = food_category(client, alice)
        budget = client.post(
            "/budget/",
            json={"category_id": category_id, "month": 3, "year": 2024, "amount": 100},
            headers=alice,
        ).json()["data"]

        res = client.put(f"/budget/{budget['id']}", json={"amount": 150}, headers=alice)
        assert res.json()["data"]["amount"] == 150

        listed = client.get("/budget/all", params={"month": 3, "year": 2024}, headers=alice).json()
        assert [b["id"] for b in listed["data"]] == [budget["id"]]

        assert client.delete(f"/budget/{budget['id']}", headers=alice).status_code == 200
        assert client.get(f"/budget/{budget['id']}/progress", headers=alice).status_code == 404


class TestGoals:
    def test_add_and_withdraw(self, client, alice):
        goal = client.post("/goal/", json={"name": "Bike", "target_amount": 500}, headers=alice).json()

        res = client.post(f"/goal/{goal['id']}/add", json={"amount": 120}, headers=alice)
        assert res.json()["saved_amount"] == 120

        res = client.post(f"/goal/{goal['id']}/withdraw", json={"amount": 200}, headers=alice)
        assert res.status_code == 400
        assert res.json()["message"] == "Withdrawal amount exceeds saved amount."

        res = client.post(f"/goal/{goal['id']}/withdraw", json={"amount": 20}, headers=alice)
        assert res.json()["saved_amount"] == 100

        assert client.post(f"/goal/{goal['id']}/add", json={"amount": -5}, headers=alice).status_code == 400

    def test_partial_update_clears_target_date(self, client, alice):
        goal = client.post(
            "/goal/",
            json={"name": "Trip", "target_amount": 900, "target_date": "2030-06-01"},
            headers=alice,
        ).json()
        assert goal["target_date"].startswith("2030-06-01")

        client.put(f"/goal/{goal['id']}", json={"name": "Long trip"}, headers=alice)
        stored = client.get("/goal/all", headers=alice).json()["data"][0]
        assert stored["name"] == "Long trip"
        assert stored["target_date"].startswith("2030-06-01")

        client.put(f"/goal/{goal['id']}", json={"target_date": None}, headers=alice)
        assert client.get("/goal/all", headers=alice).json()["data"][0]["target_date"] is None

    def test_delete(self, client, alice, bob):
        goal = client.post("/goal/", json={"name": "Bike", "target_amount": 500}, headers=alice).json()
        assert client.delete(f"/goal/{goal['id']}", headers=bob).status_code == 404
        assert client.delete(f"/goal/{goal['id']}", headers=alice).status_code == 200


class TestDebtRoutes:
    def test_calculator_is_public(self, client):
        res = client.post(
            "/interest/calculate",
            json={"amount": 1000, "percentage": 10, "duration": "year", "frequency": "2", "type": "simple"},
        )
        assert res.json() == {"interest": 200.0, "total_amount": 1200.0}

    def test_lifecycle_between_two_users(self, client, alice, bob):
        bob_id = client.get("/auth/me", headers=bob).json()["user"]["id"]
        res = client.post(
            "/interest/debts",
            json={
                "amount": 1000,
                "percentage": 10,
                "type": "given",
                "user_id": bob_id,
                "account": default_account_id(client, alice),
                "duration": "year",
                "frequency": "1",
                "description": "Car repair loan",
            },
            headers=alice,
        )
        assert res.status_code == 201, res.text
        debt = res.json()
        assert debt["premium_amount"] == 1100.0

        listed = client.get("/interest/debts", headers=bob).json()["data"]
        assert [d["id"] for d in listed] == [debt["id"]]

        res = client.put(f"/interest/debts/{debt['id']}", json={"description": "Mine now"}, headers=bob)
        assert res.status_code == 403

        assert client.put(f"/interest/debts/{debt['id']}/mark-paid", headers=bob).status_code == 200
        paid = client.get("/interest/debts", params={"is_paid": "true"}, headers=alice).json()["data"]
        assert [d["id"] for d in paid] == [debt["id"]]

        assert client.delete(f"/interest/debts/{debt['id']}", headers=bob).status_code == 404
        assert client.delete(f"/interest/debts/{debt['id']}", headers=alice).status_code == 200

    def test_unknown_counterparty(self, client, alice):
        res = client.post(
            "/interest/debts",
            json={"amount": 100, "type": "taken", "user_id": "nobody", "account": default_account_id(client, alice)},
            headers=alice,
        )
        assert res.status_code == 404


class TestSchedules:
    @pytest.fixture
    def parties(self, db):
        return make_user(db, "Lender", "lender@example.com"), make_user(db, "Borrower", "borrower@example.com")

    def _debt(self, db, parties, **payload):
        lender, borrower = parties
        body = {"amount": 1200, "percentage": 10, "type": "given", "user_id": borrower.id, **payload}
        return debts.create_debt(db, lender.id, body, now=datetime(2024, 1, 1, 10, 0))

    def test_simple_even_split(self, db, parties):
        debt = self._debt(db, parties, duration="month", frequency="12")
        assert debt["due_date"] == "2025-01-01"
        assert debt["premium_amount"] == 1320.0

        plan = debts.amortization_schedule(db, debt["id"], parties[0].id, now=datetime(2024, 6, 15))
        assert plan["totals"]["installments"] == 12
        assert plan["totals"]["total_principal_paid"] == 1200.0
        assert plan["schedule"][0]["date"].startswith("2024-02-01")
        assert plan["schedule"][0]["status"] == "due"
        assert plan["schedule"][-1]["status"] == "upcoming"
        assert plan["schedule"][-1]["remaining_principal"] == 0.0

    def test_compound_emi(self, db, parties):
        debt = self._debt(db, parties, percentage=12, interest_type="compound", duration="month", frequency="12")
        plan = debts.amortization_schedule(db, debt["id"], parties[1].id, now=datetime(2024, 1, 2))

        assert plan["schedule"][0]["installment_amount"] == 106.62
        assert plan["schedule"][0]["interest_for_period"] == 12.0
        assert plan["totals"]["total_principal_paid"] == pytest.approx(1200, abs=0.05)
        assert all(row["status"] == "upcoming" for row in plan["schedule"])

    def test_date_range_gives_monthly_installments(self, db, parties):
        debt = self._debt(db, parties, duration="2024-01-01,2024-04-01")
        plan = debts.amortization_schedule(db, debt["id"], parties[0].id)
        assert plan["totals"]["installments"] == 3

    def test_paid_debt_is_settled(self, db, parties):
        debt = self._debt(db, parties, duration="month", frequency="3")
        debts.mark_paid(db, debt["id"], parties[1].id)
        plan = debts.amortization_schedule(db, debt["id"], parties[0].id)
        assert {row["status"] for row in plan["schedule"]} == {"settled"}

    def test_stranger_cannot_see_schedule(self, db, parties):
        debt = self._debt(db, parties, duration="month", frequency="3")
        stranger = make_user(db, "Stranger", "stranger@example.com")
        with pytest.raises(HTTPException) as exc:
            debts.amortization_schedule(db, debt["id"], stranger.id)
        assert exc.value.status_code == 404
