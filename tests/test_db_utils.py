from types import SimpleNamespace

import pytest

import coins
import db_utils
from coins import VIP_LIFETIME_SENTINEL


class UniqueViolation(Exception):
    code = "23505"


class FakeQuery:
    def __init__(self, db, name):
        self.db = db
        self.name = name
        self.op = "select"
        self.payload = None
        self.filters = []

    def select(self, *args, **kwargs):
        return self

    def insert(self, row):
        self.op, self.payload = "insert", row
        return self

    def update(self, values):
        self.op, self.payload = "update", values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, *args):
        return self

    def _matches(self, row):
        return all(row.get(c) == v for c, v in self.filters)

    def execute(self):
        rows = self.db.tables.setdefault(self.name, [])
        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = dict(item)
                row.setdefault("id", f"r{len(rows) + 1}")
                rows.append(row)
                inserted.append(dict(row))
            return SimpleNamespace(data=inserted)
        if self.op == "delete":
            hit = [r for r in rows if self._matches(r)]
            rows[:] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=hit)
        if self.op == "update":
            if self.db.update_errors:
                raise self.db.update_errors.pop(0)
            hit = [r for r in rows if self._matches(r)]
            for r in hit:
                r.update(self.payload)
            return SimpleNamespace(data=[dict(r) for r in hit])
        return SimpleNamespace(data=[dict(r) for r in rows if self._matches(r)])


class FakeClient:
    def __init__(self, tables=None, users=()):
        self.tables = tables or {}
        self.update_errors = []
        self.rpc_calls = []
        self.rpc_result = None
        self.auth = SimpleNamespace(admin=SimpleNamespace(list_users=lambda: list(users)))

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        self.rpc_calls.append((name, params))
        result = self.rpc_result

        def execute():
            if isinstance(result, Exception):
                raise result
            return SimpleNamespace(data=result)

        return SimpleNamespace(execute=execute)


@pytest.fixture
def fake(monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(db_utils, "get_supabase_client", lambda: client)
    monkeypatch.setattr(coins, "ADMIN_EMAIL", "boss@example.com")
    return client


def profile_row(client, user_id):
    return [r for r in client.tables["user_profiles"] if r["user_id"] == user_id][0]


def test_profile_created_with_starting_coins(fake):
    profile = db_utils.get_or_create_profile("u1", "小明")
    assert profile["coins_balance"] == 50
    assert profile["nickname"] == "小明"
    assert profile["invite_code"] is None
    assert profile_row(fake, "u1")["coins_balance"] == 50


def test_charge_coins(fake):
    fake.tables["user_profiles"] = [{"user_id": "u1", "coins_balance": 20}]
    assert db_utils.charge_coins("u1", 7, "u1@example.com") == 13
    assert profile_row(fake, "u1")["coins_balance"] == 13


def test_charge_coins_insufficient(fake):
    fake.tables["user_profiles"] = [{"user_id": "u1", "coins_balance": 3}]
    with pytest.raises(db_utils.InsufficientCoinsError) as err:
        db_utils.charge_coins("u1", 7)
    assert err.value.need == 7
    assert err.value.balance == 3
    assert profile_row(fake, "u1")["coins_balance"] == 3


def test_admin_is_never_charged(fake):
    fake.tables["user_profiles"] = [{"user_id": "boss", "coins_balance": 0}]
    assert db_utils.charge_coins("boss", 10, "Boss@Example.com") is None
    assert profile_row(fake, "boss")["coins_balance"] == 0


def test_charge_failure_is_reported(fake):
    fake.tables["user_profiles"] = [{"user_id": "u1", "coins_balance": 20}]
    fake.update_errors.append(RuntimeError("network"))
    with pytest.raises(db_utils.DatabaseUnavailableError):
        db_utils.charge_coins("u1", 5)


def test_missing_client(monkeypatch):
    monkeypatch.setattr(db_utils, "get_supabase_client", lambda: None)
    with pytest.raises(db_utils.DatabaseUnavailableError):
        db_utils.get_or_create_profile("u1")


def test_redeem_code(fake):
    fake.rpc_result = 30
    assert db_utils.redeem_code("u1", "GIFT") == 30
    assert fake.rpc_calls == [("redeem_code", {"p_code": "GIFT", "p_user_id": "u1"})]


def test_redeem_code_invalid(fake):
    fake.rpc_result = RuntimeError("INVALID_OR_USED")
    with pytest.raises(db_utils.RedeemCodeError):
        db_utils.redeem_code("u1", "USED")


def test_invite_code_retries_on_collision(fake):
    fake.tables["user_profiles"] = [{"user_id": "u1", "coins_balance": 50}]
    fake.update_errors.append(UniqueViolation("duplicate key"))
    code = db_utils.assign_invite_code("u1")
    assert len(code) == 8
    assert profile_row(fake, "u1")["invite_code"] == code


def test_invite_code_kept_once_assigned(fake):
    fake.tables["user_profiles"] = [{"user_id": "u1", "coins_balance": 50, "invite_code": "ABCDEFGH"}]
    assert db_utils.assign_invite_code("u1") == "ABCDEFGH"


def test_invite_code_gives_up(fake):
    fake.tables["user_profiles"] = [{"user_id": "u1", "coins_balance": 50}]
    fake.update_errors.extend(UniqueViolation("dup") for _ in range(5))
    with pytest.raises(db_utils.DatabaseUnavailableError):
        db_utils.assign_invite_code("u1")


def test_set_vip(monkeypatch):
    client = FakeClient(users=[SimpleNamespace(id="u2", email="Friend@Example.com")])
    monkeypatch.setattr(db_utils, "get_supabase_client", lambda: client)

    result = db_utils.set_vip("  Friend@Example.com ", "lifetime")
    assert result == {"user_id": "u2", "email": "friend@example.com", "vip_expires_at": VIP_LIFETIME_SENTINEL}
    row = profile_row(client, "u2")
    assert row["vip_expires_at"] == VIP_LIFETIME_SENTINEL
    assert row["coins_balance"] == 50

    with pytest.raises(db_utils.UserNotFoundError):
        db_utils.set_vip("nobody@example.com", "1m")
    with pytest.raises(ValueError):
        db_utils.set_vip("friend@example.com", "forever")


def test_records(fake):
    saved = db_utils.save_record("u1", "liuyao", {"question": "问事业"})
    db_utils.save_record("u1", "mbti", {"type": "INFJ"})
    db_utils.save_record("u2", "liuyao", {"question": "别人的"})

    listed = db_utils.list_records("u1", "liuyao")
    assert [r["input_data"]["question"] for r in listed] == ["问事业"]
    assert db_utils.get_record("u1", "liuyao", saved["id"])["input_data"] == {"question": "问事业"}
    assert db_utils.get_record("u2", "liuyao", saved["id"]) is None
    with pytest.raises(ValueError):
        db_utils.save_record("u1", "tarot", {})


def test_chat_session_lifecycle(fake):
    session = db_utils.create_chat_session("u1", "  ")
    assert session["title"] == "新对话"
    assert [s["id"] for s in db_utils.list_chat_sessions("u1")] == [session["id"]]
    assert db_utils.list_chat_sessions("u2") == []

    db_utils.rename_chat_session("u1", session["id"], "事业")
    assert fake.tables["chat_sessions"][0]["title"] == "事业"
    assert "updated_at" in fake.tables["chat_sessions"][0]

    saved = db_utils.append_chat_messages("u1", session["id"], [
        {"role": "user", "content": "该换工作吗"},
        {"role": "assistant", "content": "先稳住", "is_reasoning": True},
    ])
    assert [m["role"] for m in saved] == ["user", "assistant"]
    messages = db_utils.list_chat_messages("u1", session["id"])
    assert [m["content"] for m in messages] == ["该换工作吗", "先稳住"]
    assert messages[1]["is_reasoning"] is True

    db_utils.delete_chat_session("u1", session["id"])
    assert fake.tables["chat_sessions"] == []
    assert fake.tables["chat_messages"] == []


def test_chat_session_scoped_to_owner(fake):
    session = db_utils.create_chat_session("u1", "私事")
    with pytest.raises(db_utils.ChatSessionNotFoundError):
        db_utils.list_chat_messages("u2", session["id"])
    with pytest.raises(db_utils.ChatSessionNotFoundError):
        db_utils.append_chat_messages("u2", session["id"], [{"role": "user", "content": "hi"}])
    with pytest.raises(db_utils.ChatSessionNotFoundError):
        db_utils.delete_chat_session("u2", session["id"])
    assert len(fake.tables["chat_sessions"]) == 1
