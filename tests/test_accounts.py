"""Accounts: creation, ownership rules, sharing, dashboard and analytics."""

from conftest import default_account_id


def create_account(client, headers, name="Savings", balance=0.0, currency="INR"):
    res = client.post("/accounts/", json={"name": name, "balance": balance, "currency": currency}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]


def user_id(client, headers):
    return client.get("/auth/me", headers=headers).json()["user"]["id"]


class TestAccountCrud:
    def test_opening_balance_is_recorded(self, client, alice):
        account = create_account(client, alice, balance=1000)
        assert account["balance"] == 1000

        detail = client.get(f"/accounts/{account['id']}", headers=alice).json()
        assert detail["analytics"]["income"] == 1000
        assert detail["analytics"]["balance"] == 1000

        rows = client.get("/transactions/", params={"account_id": account["id"]}, headers=alice).json()
        assert rows["pagination"]["total"] == 1
        assert rows["transactions"][0]["text"] == "Opening Balance"
        assert rows["transactions"][0]["category"]["name"] == "Opening Balance"

    def test_zero_balance_has_no_opening_transaction(self, client, alice):
        account = create_account(client, alice)
        rows = client.get("/transactions/", params={"account_id": account["id"]}, headers=alice).json()
        assert rows["transactions"] == []

    def test_duplicate_name(self, client, alice):
        create_account(client, alice)
        res = client.post("/accounts/", json={"name": "Savings"}, headers=alice)
        assert res.status_code == 409

    def test_invalid_currency(self, client, alice):
        res = client.post("/accounts/", json={"name": "Cash", "currency": "RUPEE"}, headers=alice)
        assert res.status_code == 422

    def test_update_balance_moves_analytics(self, client, alice):
        account = create_account(client, alice, balance=100)
        res = client.put(f"/accounts/{account['id']}", json={"balance": 250}, headers=alice)
        assert res.json()["message"] == "Account updated successfully"

        detail = client.get(f"/accounts/{account['id']}", headers=alice).json()
        assert detail["balance"] == 250
        assert detail["analytics"]["balance"] == 250

    def test_update_without_changes(self, client, alice):
        account = create_account(client, alice)
        res = client.put(f"/accounts/{account['id']}", json={"name": "Savings"}, headers=alice)
        assert res.json() == {"message": "No changes detected."}

    def test_delete_removes_transactions(self, client, alice):
        account = create_account(client, alice, balance=500)
        res = client.delete(f"/accounts/{account['id']}", headers=alice)
        assert res.status_code == 200

        assert client.get(f"/accounts/{account['id']}", headers=alice).status_code == 404
        rows = client.get("/transactions/", headers=alice).json()
        assert all(t["account"] != account["id"] for t in rows["transactions"])

    def test_other_users_cannot_touch_account(self, client, alice, bob):
        account = create_account(client, alice)
        assert client.get(f"/accounts/{account['id']}", headers=bob).status_code == 404
        assert client.put(f"/accounts/{account['id']}", json={"name": "Mine"}, headers=bob).status_code == 403
        assert client.delete(f"/accounts/{account['id']}", headers=bob).status_code == 403

    def test_list_search_and_pagination(self, client, alice):
        create_account(client, alice, name="Travel fund")
        create_account(client, alice, name="Emergency")

        found = client.get("/accounts/", params={"q": "travel"}, headers=alice).json()
        assert [a["name"] for a in found["accounts"]] == ["Travel fund"]

        page = client.get("/accounts/", params={"page_size": 2}, headers=alice).json()
        assert len(page["accounts"]) == 2
        assert page["pagination"]["total"] == 3

        assert client.get("/accounts/", params={"page": 0}, headers=alice).status_code == 400


class TestSharing:
    def test_share_and_revoke(self, client, alice, bob, sent_emails):
        account = create_account(client, alice, name="Household", balance=300)
        bob_id = user_id(client, bob)

        res = client.post("/accounts/share", json={"account_id": account["id"], "user_id": bob_id}, headers=alice)
        assert res.status_code == 200
        assert sent_emails[-1]["template"] == "share_notification"

        shared = client.get("/accounts/get-shares", headers=bob).json()["data"]
        assert [a["name"] for a in shared] == ["Household"]
        assert client.get(f"/accounts/{account['id']}", headers=bob).status_code == 200

        previous = client.get(f"/accounts/previous/share/{account['id']}", headers=alice).json()["data"]
        assert [u["id"] for u in previous] == [bob_id]

        again = client.post("/accounts/share", json={"account_id": account["id"], "user_id": bob_id}, headers=alice)
        assert again.status_code == 409

        client.post("/accounts/revoke-share", json={"account_id": account["id"], "user_id": bob_id}, headers=alice)
        assert client.get(f"/accounts/{account['id']}", headers=bob).status_code == 404

    def test_cannot_share_with_self(self, client, alice):
        account = create_account(client, alice)
        res = client.post(
            "/accounts/share",
            json={"account_id": account["id"], "user_id": user_id(client, alice)},
            headers=alice,
        )
        assert res.status_code == 400

    def test_only_owner_shares(self, client, alice, bob):
        account = create_account(client, alice)
        res = client.post(
            "/accounts/share",
            json={"account_id": account["id"], "user_id": user_id(client, alice)},
            headers=bob,
        )
        assert res.status_code == 403

    def test_shared_user_can_record_transactions(self, client, alice, bob):
        account = create_account(client, alice, name="Household", balance=300)
        client.post(
            "/accounts/share",
            json={"account_id": account["id"], "user_id": user_id(client, bob)},
            headers=alice,
        )
        res = client.post(
            "/transactions/",
            json={"text": "Groceries", "amount": 120, "is_income": False, "account": account["id"]},
            headers=bob,
        )
        assert res.status_code == 201
        assert client.get(f"/accounts/{account['id']}", headers=alice).json()["balance"] == 180

    def test_dropdowns(self, client, alice, bob):
        own = client.get("/accounts/list", headers=alice).json()["data"]
        assert len(own) == 1
        people = client.get("/accounts/dropdown/user", headers=alice).json()["data"]
        assert [p["email"] for p in people] == ["bob@example.com"]


class TestOverview:
    def test_empty_dashboard(self, client, alice):
        data = client.get("/accounts/dashboard", headers=alice).json()
        assert data["total_transaction"] == 0
        assert data["income_chart_data"] == []
        assert len(data["accounts_info"]) == 1

    def test_dashboard_totals(self, client, alice):
        account_id = default_account_id(client, alice)
        for text, amount, is_income in (("Salary", 1000, True), ("Rent", 400, False), ("Coffee", 5, False)):
            client.post(
                "/transactions/",
                json={"text": text, "amount": amount, "is_income": is_income, "account": account_id},
                headers=alice,
            )

        data = client.get("/accounts/dashboard", headers=alice).json()
        assert data["total_transaction"] == 3
        assert data["overall_income"] == 1000
        assert data["overall_expense"] == 405
        assert data["overall_balance"] == 595
        assert data["most_expensive_expense"] == 400
        assert data["cheapest_expense"] == 5
        assert len(data["balance_chart_data"]) == 1

    def test_search_term(self, client, alice):
        account_id = default_account_id(client, alice)
        client.post(
            "/transactions/",
            json={"text": "Pizza night", "amount": 20, "is_income": True, "account": account_id},
            headers=alice,
        )
        hits = client.get("/accounts/searchTerm", params={"q": "pizza"}, headers=alice).json()["data"]
        assert len(hits) >= 1
        assert client.get("/accounts/searchTerm", params={"q": ""}, headers=alice).status_code == 400

    def test_custom_analytics_with_empty_previous_period(self, client, alice):
        account_id = default_account_id(client, alice)
        client.post(
            "/transactions/",
            json={"text": "Salary", "amount": 300, "is_income": True, "account": account_id},
            headers=alice,
        )
        data = client.get(f"/accounts/customAnalytics/{account_id}", params={"duration": "thisMonth"}, headers=alice).json()
        assert data["income"] == 300
        assert data["balance"] == 300
        assert data["income_percentage_change"] == 100.0

    def test_custom_analytics_for_an_idle_account(self, client, alice):
        account_id = default_account_id(client, alice)
        data = client.get(f"/accounts/customAnalytics/{account_id}", params={"duration": "thisMonth"}, headers=alice).json()
        assert data["income"] == 0
        assert data["income_percentage_change"] == 0.0
        assert data["expense_percentage_change"] == 0.0
        assert data["balance_percentage_change"] == 0.0
