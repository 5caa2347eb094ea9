"""Transactions: balance bookkeeping, updates, filters, charts, recurring templates and export."""

import io

import pandas as pd

from conftest import default_account_id


def add(client, headers, account_id, text, amount, is_income, **extra):
    body = {"text": text, "amount": amount, "is_income": is_income, "account": account_id, **extra}
    res = client.post("/transactions/", json=body, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]


def account(client, headers, account_id):
    return client.get(f"/accounts/{account_id}", headers=headers).json()


class TestBookkeeping:
    def test_income_then_expense(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 1000, True)
        add(client, alice, account_id, "Rent", 300, False)

        data = account(client, alice, account_id)
        assert data["balance"] == 700
        assert data["analytics"]["income"] == 1000
        assert data["analytics"]["expense"] == 300
        assert data["analytics"]["balance"] == 700

    def test_insufficient_balance(self, client, alice):
        account_id = default_account_id(client, alice)
        res = client.post(
            "/transactions/",
            json={"text": "Laptop", "amount": 50, "is_income": False, "account": account_id},
            headers=alice,
        )
        assert res.status_code == 400
        assert res.json()["message"] == "Insufficient balance for this expense."
        assert account(client, alice, account_id)["balance"] == 0

    def test_short_text_and_zero_amount(self, client, alice):
        account_id = default_account_id(client, alice)
        res = client.post(
            "/transactions/",
            json={"text": "ab", "amount": 10, "is_income": True, "account": account_id},
            headers=alice,
        )
        assert res.status_code == 422
        res = client.post(
            "/transactions/",
            json={"text": "Refund", "amount": 0, "is_income": True, "account": account_id},
            headers=alice,
        )
        assert res.status_code == 400

    def test_update_amount_moves_balance_by_difference(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 1000, True)
        rent = add(client, alice, account_id, "Rent", 300, False)

        res = client.put(f"/transactions/{rent['id']}", json={"amount": 500}, headers=alice)
        assert res.status_code == 200
        assert res.json()["data"]["amount"] == 500

        data = account(client, alice, account_id)
        assert data["balance"] == 500
        assert data["analytics"]["expense"] == 500

    def test_flip_direction(self, client, alice):
        account_id = default_account_id(client, alice)
        gift = add(client, alice, account_id, "Gift", 100, True)
        add(client, alice, account_id, "Bonus", 500, True)

        client.put(f"/transactions/{gift['id']}", json={"is_income": False}, headers=alice)
        data = account(client, alice, account_id)
        assert data["balance"] == 400
        assert data["analytics"]["income"] == 500
        assert data["analytics"]["expense"] == 100

    def test_text_only_update_keeps_balance(self, client, alice):
        account_id = default_account_id(client, alice)
        salary = add(client, alice, account_id, "Salary", 1000, True)
        res = client.put(f"/transactions/{salary['id']}", json={"text": "March salary"}, headers=alice)
        assert res.json()["data"]["text"] == "March salary"
        assert account(client, alice, account_id)["balance"] == 1000

    def test_null_fields_are_left_unchanged(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Bonus", 1000, True)
        salary = add(client, alice, account_id, "Salary", 300, True)

        res = client.put(
            f"/transactions/{salary['id']}",
            json={"text": "Salary again", "is_income": None, "amount": None, "recurring": None},
            headers=alice,
        )
        assert res.status_code == 200, res.text
        data = res.json()["data"]
        assert data["text"] == "Salary again"
        assert data["is_income"] is True
        assert data["amount"] == 300
        assert data["recurring"] is False

        balances = account(client, alice, account_id)
        assert balances["balance"] == 1300
        assert balances["analytics"]["income"] == 1300
        assert balances["analytics"]["expense"] == 0

    def test_update_cannot_overdraw(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 500, True)
        rent = add(client, alice, account_id, "Rent", 300, False)

        res = client.put(f"/transactions/{rent['id']}", json={"amount": 900}, headers=alice)
        assert res.status_code == 400
        assert res.json()["message"] == "Insufficient balance after update."
        assert account(client, alice, account_id)["balance"] == 200

    def test_delete_reverses_effect(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 1000, True)
        rent = add(client, alice, account_id, "Rent", 300, False)

        assert client.delete(f"/transactions/{rent['id']}", headers=alice).status_code == 200
        data = account(client, alice, account_id)
        assert data["balance"] == 1000
        assert data["analytics"]["expense"] == 0
        assert client.get(f"/transactions/{rent['id']}", headers=alice).status_code == 404

    def test_foreign_transaction_is_hidden(self, client, alice, bob):
        account_id = default_account_id(client, alice)
        salary = add(client, alice, account_id, "Salary", 1000, True)
        assert client.get(f"/transactions/{salary['id']}", headers=bob).status_code == 404
        assert client.delete(f"/transactions/{salary['id']}", headers=bob).status_code == 404


class TestQueries:
    def test_filters(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 1000, True)
        add(client, alice, account_id, "Rent", 300, False)
        add(client, alice, account_id, "Coffee beans", 15, False)

        expenses = client.get("/transactions/", params={"is_income": "false"}, headers=alice).json()
        assert sorted(t["text"] for t in expenses["transactions"]) == ["Coffee beans", "Rent"]

        big = client.get("/transactions/", params={"min_amount": 100}, headers=alice).json()
        assert sorted(t["text"] for t in big["transactions"]) == ["Rent", "Salary"]

        found = client.get("/transactions/", params={"q": "coffee"}, headers=alice).json()
        assert [t["text"] for t in found["transactions"]] == ["Coffee beans"]

        by_amount = client.get("/transactions/", params={"sort_by": "amount", "sort_order": "asc"}, headers=alice).json()
        assert [t["amount"] for t in by_amount["transactions"]] == [15, 300, 1000]

    def test_bad_sort_order(self, client, alice):
        assert client.get("/transactions/", params={"sort_order": "up"}, headers=alice).status_code == 400

    def test_chart_endpoints(self, client, alice):
        account_id = default_account_id(client, alice)
        cat = client.post("/category/", json={"name": "Food"}, headers=alice).json()
        add(client, alice, account_id, "Salary", 1000, True)
        add(client, alice, account_id, "Dinner", 60, False, category=cat["id"])
        add(client, alice, account_id, "Lunch", 40, False, category=cat["id"])

        totals = client.get("/transactions/by/income/expense", headers=alice).json()
        assert totals == {"income": 1000.0, "expense": 100.0}

        chart = client.get("/transactions/by/category/chart", headers=alice).json()
        assert chart["name"] == ["Food"]
        assert chart["total_expense"] == [100.0]

        series = client.get("/transactions/by/income/expense/chart", headers=alice).json()
        assert sum(series["income"]) == 1000
        assert sum(series["expense"]) == 100

        extremes = client.get("/transactions/extremes", headers=alice).json()
        assert extremes["highest_expense"]["text"] == "Dinner"
        assert extremes["lowest_expense"]["text"] == "Lunch"
        assert extremes["highest_income"]["amount"] == 1000

    def test_export_csv(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 1000, True)
        add(client, alice, account_id, "Rent", 300, False)

        res = client.get("/transactions/export", params={"format": "csv"}, headers=alice)
        assert res.status_code == 200
        assert "attachment" in res.headers["content-disposition"]
        frame = pd.read_csv(io.BytesIO(res.content))
        assert sorted(frame["Amount"].tolist()) == [-300, 1000]

    def test_export_xlsx(self, client, alice):
        account_id = default_account_id(client, alice)
        add(client, alice, account_id, "Salary", 1000, True)
        res = client.get("/transactions/export", headers=alice)
        frame = pd.read_excel(io.BytesIO(res.content), engine="openpyxl")
        assert frame["Description"].tolist() == ["Salary"]

    def test_export_nothing(self, client, alice):
        assert client.get("/transactions/export", headers=alice).status_code == 404


class TestRecurringTemplates:
    def test_recurring_requires_type(self, client, alice):
        account_id = default_account_id(client, alice)
        res = client.post(
            "/transactions/",
            json={"text": "Salary", "amount": 100, "is_income": True, "account": account_id, "recurring": True},
            headers=alice,
        )
        assert res.status_code == 400

    def test_template_lifecycle(self, client, alice):
        account_id = default_account_id(client, alice)
        template = add(client, alice, account_id, "Salary", 1000, True, recurring=True, recurrence_type="monthly")
        add(client, alice, account_id, "Groceries", 50, False)

        listed = client.get("/transactions/recurring", headers=alice).json()
        assert [t["id"] for t in listed["transactions"]] == [template["id"]]

        res = client.put(f"/transactions/recurring/{template['id']}", json={"recurrence_type": "weekly"}, headers=alice)
        assert res.json()["data"]["recurrence_type"] == "weekly"

        res = client.put(f"/transactions/recurring/{template['id']}", json={"recurring": False}, headers=alice)
        assert res.status_code == 400

        assert client.post(f"/transactions/recurring/{template['id']}/skip", headers=alice).status_code == 200

        assert client.delete(f"/transactions/recurring/{template['id']}", headers=alice).status_code == 200
        assert client.get(f"/transactions/recurring/{template['id']}", headers=alice).status_code == 404
        assert account(client, alice, account_id)["balance"] == -50

    def test_plain_transaction_is_not_a_template(self, client, alice):
        account_id = default_account_id(client, alice)
        salary = add(client, alice, account_id, "Salary", 1000, True)
        assert client.get(f"/transactions/recurring/{salary['id']}", headers=alice).status_code == 404
