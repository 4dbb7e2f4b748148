"""
铜币定价、VIP 期限与邀请码生成 (纯逻辑，不访问数据库)。
"""
import calendar
import os
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

COINS_BASE = 5
COINS_REASONING = 2
COINS_SEARCH = 3
COINS_DIVINE = 6
INITIAL_COINS = 50

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")

# 终身 VIP 的哨兵值；NULL 表示从未开通
VIP_LIFETIME_SENTINEL = "9999-12-31T23:59:59.999Z"
VIP_DURATIONS = ("1m", "3m", "6m", "1y", "lifetime")
_DURATION_MONTHS = {"1m": 1, "3m": 3, "6m": 6, "1y": 12}

INVITE_CODE_LEN = 8
INVITE_CODE_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_RETRIES = 5
UNIQUE_VIOLATION = "23505"


def chat_cost(use_reasoning: bool = False, use_search: bool = False) -> int:
    return COINS_BASE + (COINS_REASONING if use_reasoning else 0) + (COINS_SEARCH if use_search else 0)


def chat_cost_message(use_reasoning: bool = False, use_search: bool = False) -> str:
    parts = f"基础 {COINS_BASE}"
    if use_reasoning:
        parts += f" + 深度思考 {COINS_REASONING}"
    if use_search:
        parts += f" + 联网 {COINS_SEARCH}"
    return f"铜币不足，本次需 {chat_cost(use_reasoning, use_search)} 铜币（{parts}）"


def divine_cost_message() -> str:
    return f"铜币不足，AI 解卦需 {COINS_DIVINE} 铜币"


def is_admin(email: Optional[str]) -> bool:
    return bool(ADMIN_EMAIL) and (email or "").lower() == ADMIN_EMAIL.lower()


def _parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_vip(vip_expires_at: Optional[str], now: datetime = None) -> bool:
    """仅当为终身哨兵或到期时间未过时才是 VIP"""
    if not vip_expires_at:
        return False
    if vip_expires_at == VIP_LIFETIME_SENTINEL:
        return True
    now = now or datetime.now(timezone.utc)
    try:
        return _parse_ts(vip_expires_at) > now
    except ValueError:
        return False


def is_lifetime_vip(vip_expires_at: Optional[str]) -> bool:
    return vip_expires_at == VIP_LIFETIME_SENTINEL


def add_months(dt: datetime, months: int) -> datetime:
    """按自然月顺延，目标月没有该日时取月末"""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def get_vip_expires_at(duration: str, now: datetime = None) -> str:
    """
    计算 VIP 到期时间 (ISO 字符串)；lifetime 返回哨兵值。

    Raises:
        ValueError: 未知期限
    """
    if duration not in VIP_DURATIONS:
        raise ValueError(f"请选择有效期限：{' / '.join(VIP_DURATIONS)}")
    if duration == "lifetime":
        return VIP_LIFETIME_SENTINEL
    now = now or datetime.now(timezone.utc)
    return add_months(now, _DURATION_MONTHS[duration]).isoformat()


def generate_invite_code(rng: random.Random = None) -> str:
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(INVITE_CODE_CHARS) for _ in range(INVITE_CODE_LEN))
