"""Chat assistant: tool-calling loop against a scripted model, history and tool execution."""

import json
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from app import config
from app.services import accounts, assistant, categories
from app.services.assistant_tools import build_tools, run_tool
from conftest import default_account_id, make_user


def tool_call(call_id, name, **arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=json.dumps(arguments)))


def reply(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class ScriptedModel:
    """Stands in for the OpenAI client; hands out prepared replies in order."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self.create))

    def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.replies.pop(0)


@pytest.fixture
def model(monkeypatch):
    def install(replies):
        scripted = ScriptedModel(replies)
        monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(assistant, "_openai_client", lambda: scripted)
        return scripted

    return install


class TestProcess:
    def test_unconfigured(self, client, alice):
        res = client.post("/ai/process", json={"message": "hello"}, headers=alice)
        assert res.status_code == 503

    def test_tool_round_then_answer(self, client, alice, model):
        scripted = model(
            [
                reply(tool_calls=[
                    tool_call("call_1", "add_transaction", account="Alice's Account", text="Salary", amount=250, type="income"),
                ]),
                reply(content="Added 250 to Alice's Account."),
            ]
        )

        res = client.post("/ai/process", json={"message": "I got 250 salary"}, headers=alice)
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["response"] == "Added 250 to Alice's Account."
        assert [c["name"] for c in body["tool_calls"]] == ["add_transaction"]
        assert body["tool_calls"][0]["result"]["success"] is True

        account_id = default_account_id(client, alice)
        assert client.get(f"/accounts/{account_id}", headers=alice).json()["balance"] == 250

        second_round = scripted.requests[1]["messages"]
        assert second_round[-1]["role"] == "tool"
        assert second_round[-1]["tool_call_id"] == "call_1"
        assert "tools" in scripted.requests[0]

    def test_history_is_replayed_and_cleared(self, client, alice, model):
        scripted = model([reply(content="Hi!"), reply(content="Still here.")])

        first = client.post("/ai/process", json={"message": "hello"}, headers=alice).json()
        session_id = first["session_id"]
        client.post("/ai/process", json={"message": "again", "session_id": session_id}, headers=alice)

        replayed = [m["content"] for m in scripted.requests[1]["messages"][1:]]
        assert replayed == ["hello", "Hi!", "again"]

        history = client.get(f"/ai/history/{session_id}", headers=alice).json()
        assert [m["role"] for m in history["messages"]] == ["user", "assistant", "user", "assistant"]

        cleared = client.delete(f"/ai/history/{session_id}", headers=alice).json()
        assert cleared["deleted"] == 4
        assert client.get(f"/ai/history/{session_id}", headers=alice).json()["messages"] == []

    def test_history_is_per_user(self, client, alice, bob, model):
        model([reply(content="Hi!")])
        session_id = client.post("/ai/process", json={"message": "hello"}, headers=alice).json()["session_id"]
        assert client.get(f"/ai/history/{session_id}", headers=bob).json()["messages"] == []

    def test_last_round_has_no_tools(self, client, alice, model, monkeypatch):
        monkeypatch.setattr(config, "AI_MAX_STEPS", 2)
        looping = reply(tool_calls=[tool_call("call_x", "list_accounts")])
        scripted = model([looping, looping, reply(content=None)])

        body = client.post("/ai/process", json={"message": "loop"}, headers=alice).json()
        assert body["response"] == "OK."
        assert len(body["tool_calls"]) == 2
        assert ["tools" in r for r in scripted.requests] == [True, True, False]


class TestRunTool:
    @pytest.fixture
    def carol_tools(self, db):
        carol = make_user(db)
        return carol, build_tools(db, carol)

    def test_unknown_tool(self, db, carol_tools):
        _, tools = carol_tools
        assert run_tool(db, tools, "launch_rocket", "{}") == {"success": False, "error": "Unknown tool: launch_rocket"}

    def test_bad_arguments(self, db, carol_tools):
        _, tools = carol_tools
        assert run_tool(db, tools, "list_accounts", "{not json")["success"] is False
        assert "Invalid arguments" in run_tool(db, tools, "list_accounts", '{"colour": "red"}')["error"]

    def test_ambiguous_name_asks_for_clarification(self, db, carol_tools):
        carol, tools = carol_tools
        accounts.create_account(db, carol.id, "Travel EU", 0.0, "EUR")
        accounts.create_account(db, carol.id, "Travel US", 0.0, "USD")

        result = run_tool(db, tools, "get_account_balance", json.dumps({"account": "travel"}))
        assert result["clarification_needed"] is True
        assert sorted(o["name"] for o in result["options"]) == ["Travel EU", "Travel US"]

    def test_service_errors_are_reported(self, db, carol_tools):
        _, tools = carol_tools
        result = run_tool(
            db,
            tools,
            "add_transaction",
            json.dumps({"account": "Carol's Account", "text": "Laptop", "amount": 900, "type": "expense"}),
        )
        assert result == {"success": False, "error": "Insufficient balance for this expense."}

    def test_identify_before_delete(self, db, carol_tools):
        carol, tools = carol_tools
        found = run_tool(db, tools, "identify_account_for_action", json.dumps({"account": "Carol"}))
        assert found["confirmation_needed"] is True

        deleted = run_tool(db, tools, "execute_confirmed_delete_account", json.dumps({"account_id": found["id"]}))
        assert deleted["success"] is True
        assert run_tool(db, tools, "list_accounts", "{}")["data"] == []

    def test_described_dates(self, db, carol_tools):
        _, tools = carol_tools
        added = run_tool(
            db,
            tools,
            "add_transaction",
            json.dumps({"account": "Carol", "text": "Refund", "amount": 30, "type": "income", "date": "yesterday"}),
        )
        assert added["success"] is True
        assert added["data"]["created_at"].startswith((date.today() - timedelta(days=1)).isoformat())

        assert run_tool(db, tools, "list_transactions", json.dumps({"duration": "yesterday"}))["total"] == 1
        assert run_tool(db, tools, "list_transactions", json.dumps({"duration": "today"}))["total"] == 0

        result = run_tool(
            db,
            tools,
            "add_transaction",
            json.dumps({"account": "Carol", "text": "Coffee", "amount": 3, "type": "income", "date": "last month"}),
        )
        assert result == {"success": False, "error": '"last month" is a period, not a single day. Please name one day.'}

        assert "Could not understand" in run_tool(db, tools, "list_transactions", json.dumps({"duration": "whenever"}))["error"]

    def test_parse_period(self, db, carol_tools):
        _, tools = carol_tools
        result = run_tool(db, tools, "parse_period", json.dumps({"description": "March 2023"}))
        assert result["data"] == {"start_date": "2023-03-01", "end_date": "2023-03-31", "duration": "2023-03-01,2023-03-31"}
        assert run_tool(db, tools, "parse_period", json.dumps({"description": "blue"}))["success"] is False

    def test_budget_for_a_described_month(self, db, carol_tools):
        carol, tools = carol_tools
        categories.create_category(db, carol.id, "Food")
        result = run_tool(
            db, tools, "create_budget", json.dumps({"category": "Food", "amount": 200, "period": "March 2030"})
        )
        assert result["success"] is True
        assert (result["data"]["data"]["month"], result["data"]["data"]["year"]) == (3, 2030)

        assert "Which month" in run_tool(db, tools, "create_budget", json.dumps({"category": "Food", "amount": 200}))["error"]
