import random
from datetime import datetime, timezone

import pytest

import coins
from coins import (
    INVITE_CODE_CHARS,
    VIP_LIFETIME_SENTINEL,
    add_months,
    chat_cost,
    chat_cost_message,
    divine_cost_message,
    generate_invite_code,
    get_vip_expires_at,
    is_admin,
    is_lifetime_vip,
    is_vip,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_chat_cost():
    assert chat_cost() == 5
    assert chat_cost(use_reasoning=True) == 7
    assert chat_cost(use_search=True) == 8
    assert chat_cost(True, True) == 10


def test_cost_messages():
    assert chat_cost_message() == "铜币不足，本次需 5 铜币（基础 5）"
    assert chat_cost_message(True, True) == "铜币不足，本次需 10 铜币（基础 5 + 深度思考 2 + 联网 3）"
    assert divine_cost_message() == "铜币不足，AI 解卦需 6 铜币"


def test_is_vip():
    assert not is_vip(None)
    assert not is_vip("")
    assert is_vip(VIP_LIFETIME_SENTINEL)
    assert is_vip("2024-07-01T00:00:00Z", now=NOW)
    assert not is_vip("2024-05-01T00:00:00+00:00", now=NOW)
    assert not is_vip("not a date", now=NOW)
    assert is_lifetime_vip(VIP_LIFETIME_SENTINEL)
    assert not is_lifetime_vip("2024-07-01T00:00:00Z")


def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2024, 11, 30), 3) == datetime(2025, 2, 28)
    assert add_months(datetime(2024, 5, 15), 12) == datetime(2025, 5, 15)


def test_vip_expiry():
    assert get_vip_expires_at("lifetime") == VIP_LIFETIME_SENTINEL
    assert get_vip_expires_at("1m", now=NOW) == "2024-07-01T00:00:00+00:00"
    assert get_vip_expires_at("1y", now=datetime(2024, 2, 29, tzinfo=timezone.utc)) == "2025-02-28T00:00:00+00:00"
    with pytest.raises(ValueError):
        get_vip_expires_at("2w")


def test_invite_code():
    code = generate_invite_code(random.Random(0))
    assert len(code) == 8
    assert all(c in INVITE_CODE_CHARS for c in code)
    assert not set(code) & set("01IO")
    assert generate_invite_code(random.Random(3)) == generate_invite_code(random.Random(3))


def test_is_admin(monkeypatch):
    monkeypatch.setattr(coins, "ADMIN_EMAIL", "")
    assert not is_admin("anyone@example.com")
    monkeypatch.setattr(coins, "ADMIN_EMAIL", "Boss@Example.com")
    assert is_admin("boss@example.com")
    assert not is_admin(None)
