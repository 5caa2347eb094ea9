"""Signup, login, session handling, password reset and invitations."""

from datetime import datetime, timedelta

from conftest import auth_headers
from models import Invitation


class TestSignupAndLogin:
    def test_signup_creates_default_account_and_category(self, client, sent_emails):
        res = client.post(
            "/auth/signup",
            json={"name": "Alice", "email": "Alice@Example.com", "password": "password123"},
        )
        assert res.status_code == 201
        assert res.json()["message"] == "User created successfully!"
        assert [m["template"] for m in sent_emails] == ["welcome"]

        headers = auth_headers(client, email="alice@example.com")
        accounts = client.get("/accounts/", headers=headers).json()["accounts"]
        assert len(accounts) == 1
        assert accounts[0]["name"] == "Alice's Account"
        assert accounts[0]["balance"] == 0.0

        names = [c["name"] for c in client.get("/category/", headers=headers).json()["categories"]]
        assert "Default" in names

    def test_duplicate_signup(self, client):
        body = {"name": "Alice", "email": "alice@example.com", "password": "password123"}
        assert client.post("/auth/signup", json=body).status_code == 201
        res = client.post("/auth/signup", json=body)
        assert res.status_code == 409
        assert res.json() == {"status": 409, "message": "User already exists!"}

    def test_signup_validation(self, client):
        res = client.post("/auth/signup", json={"name": "Al", "email": "nope", "password": "short"})
        assert res.status_code == 422
        assert res.json()["status"] == 422

    def test_login_errors(self, client, alice):
        res = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong-password"})
        assert res.status_code == 401
        res = client.post("/auth/login", json={"email": "ghost@example.com", "password": "password123"})
        assert res.status_code == 404

    def test_me_requires_token(self, client, alice):
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401

        me = client.get("/auth/me", headers=alice).json()["user"]
        assert me["email"] == "alice@example.com"
        assert "password" not in me

    def test_logout_invalidates_token(self, client, alice):
        assert client.post("/auth/logout", headers=alice).status_code == 200
        assert client.get("/auth/me", headers=alice).status_code == 401

    def test_new_login_replaces_old_token(self, client, alice):
        newer = auth_headers(client)
        assert client.get("/auth/me", headers=alice).status_code == 401
        assert client.get("/auth/me", headers=newer).status_code == 200


class TestProfile:
    def test_update_name_and_currency(self, client, alice):
        res = client.put("/auth/update", json={"name": "Alice B", "preferred_currency": "usd"}, headers=alice)
        assert res.status_code == 200
        assert res.json()["user"]["preferred_currency"] == "USD"

    def test_update_without_fields(self, client, alice):
        assert client.put("/auth/update", json={}, headers=alice).status_code == 400

    def test_preferences(self, client, alice):
        assert client.get("/auth/preferences", headers=alice).json() == {"preferred_currency": "INR"}
        assert client.put("/auth/preferences", json={"preferred_currency": "EU"}, headers=alice).status_code == 400
        client.put("/auth/preferences", json={"preferred_currency": "eur"}, headers=alice)
        assert client.get("/auth/preferences", headers=alice).json() == {"preferred_currency": "EUR"}


class TestPasswordReset:
    def test_reset_flow(self, client, alice, sent_emails):
        res = client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        assert res.status_code == 200
        reset_mail = [m for m in sent_emails if m["template"] == "forgot_password"][-1]
        token = reset_mail["context"]["reset_link"].split("token=", 1)[1]

        res = client.post("/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
        assert res.status_code == 200

        # The token is single use
        res = client.post("/auth/reset-password", json={"token": token, "password": "another-pass"})
        assert res.status_code == 400

        res = client.post("/auth/login", json={"email": "alice@example.com", "password": "brand-new-pass"})
        assert res.status_code == 200

    def test_unknown_email_gets_the_same_answer(self, client, alice, sent_emails):
        known = client.post("/auth/forgot-password", json={"email": "alice@example.com"}).json()
        unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"}).json()
        assert known == unknown
        assert sum(1 for m in sent_emails if m["template"] == "forgot_password") == 1

    def test_garbage_token(self, client):
        res = client.post("/auth/reset-password", json={"token": "garbage", "password": "brand-new-pass"})
        assert res.status_code == 401


class TestInvitations:
    def _invite(self, client, headers, sent_emails, email="dave@example.com"):
        res = client.post("/invitation/", json={"email": email}, headers=headers)
        assert res.status_code == 201, res.text
        link = [m for m in sent_emails if m["template"] == "invitation"][-1]["context"]["invite_link"]
        return link.split("invite=", 1)[1]

    def test_verify_and_signup_with_token(self, client, alice, sent_emails):
        token = self._invite(client, alice, sent_emails)

        info = client.get(f"/invitation/verify/{token}").json()
        assert info["email"] == "dave@example.com"
        assert info["inviter_name"] == "Alice"
        assert info["status"] == "pending"

        res = client.post(
            "/auth/signup",
            json={"name": "Dave", "email": "dave@example.com", "password": "password123", "invite_token": token},
        )
        assert res.status_code == 201
        assert client.get(f"/invitation/verify/{token}").status_code == 409

    def test_signup_with_token_for_other_email(self, client, alice, sent_emails):
        token = self._invite(client, alice, sent_emails)
        res = client.post(
            "/auth/signup",
            json={"name": "Eve", "email": "eve@example.com", "password": "password123", "invite_token": token},
        )
        assert res.status_code == 400
        assert client.post("/auth/login", json={"email": "eve@example.com", "password": "password123"}).status_code == 404

    def test_pending_invitation_cannot_be_resent(self, client, alice, sent_emails):
        self._invite(client, alice, sent_emails)
        res = client.post("/invitation/", json={"email": "dave@example.com"}, headers=alice)
        assert res.status_code == 409

    def test_expired_invitation(self, client, db, alice, sent_emails):
        token = self._invite(client, alice, sent_emails)
        invitation = db.query(Invitation).filter(Invitation.token == token).one()
        invitation.expires_at = datetime.now() - timedelta(minutes=1)
        db.commit()

        assert client.get(f"/invitation/verify/{token}").status_code == 410
        db.expire_all()
        assert db.query(Invitation).filter(Invitation.token == token).one().status == "expired"

        # Stays expired, and signup with it is refused
        assert client.get(f"/invitation/verify/{token}").status_code == 410
        res = client.post(
            "/auth/signup",
            json={"name": "Dave", "email": "dave@example.com", "password": "password123", "invite_token": token},
        )
        assert res.status_code == 410

        # A fresh invitation replaces the expired one
        fresh = self._invite(client, alice, sent_emails)
        assert client.get(f"/invitation/verify/{fresh}").json()["status"] == "pending"

    def test_existing_user_cannot_be_invited(self, client, alice, bob):
        res = client.post("/invitation/", json={"email": "bob@example.com"}, headers=alice)
        assert res.status_code == 400

    def test_unknown_token(self, client):
        assert client.get("/invitation/verify/unknown").status_code == 404
