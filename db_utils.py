"""
Database utilities for user profiles, coins, VIP, reading records and chat sessions.
Uses Supabase (hosted Postgres + auth) through a singleton client.
"""
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, List, Any

from supabase import create_client, Client
from dotenv import load_dotenv

from coins import (
    INITIAL_COINS,
    INVITE_CODE_RETRIES,
    UNIQUE_VIOLATION,
    generate_invite_code,
    get_vip_expires_at,
    is_admin,
)

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

PROFILE_TABLE = "user_profiles"
RECORD_TABLE = "daoyoushuju"
RECORD_TYPES = ("liuyao", "mbti", "classical")
RECORD_LIST_LIMIT = 50
CHAT_SESSION_TABLE = "chat_sessions"
CHAT_MESSAGE_TABLE = "chat_messages"
DEFAULT_SESSION_TITLE = "新对话"

_supabase_client: Optional[Client] = None
_supabase_init_attempted = False


class DatabaseUnavailableError(RuntimeError):
    """数据库未配置或请求失败"""


class InsufficientCoinsError(Exception):
    def __init__(self, need: int, balance: int = 0):
        super().__init__(f"铜币不足，本次需 {need} 铜币")
        self.need = need
        self.balance = balance


class RedeemCodeError(ValueError):
    """兑换码无效或已被使用"""


class UserNotFoundError(LookupError):
    pass


class ChatSessionNotFoundError(LookupError):
    """会话不存在或无权访问"""


def get_supabase_client() -> Optional[Client]:
    """Initialize and return a singleton Supabase client."""
    global _supabase_client, _supabase_init_attempted
    if _supabase_init_attempted:
        return _supabase_client

    _supabase_init_attempted = True
    url: str = os.environ.get("SUPABASE_URL")
    key: str = (
        os.environ.get("SUPABASE_KEY")
        or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    )

    if not url or not key:
        logger.warning("Supabase credentials not found in environment variables.")
        _supabase_client = None
        return None

    try:
        _supabase_client = create_client(url, key)
    except Exception as e:
        logger.error("Failed to initialize Supabase client: %s", e)
        _supabase_client = None

    return _supabase_client


def _require_client() -> Client:
    client = get_supabase_client()
    if client is None:
        raise DatabaseUnavailableError("数据库未连接")
    return client


def get_user_from_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Resolve a bearer access token to the signed-in user.
    Returns None when the token is missing, expired or rejected.
    """
    if not token:
        return None
    client = get_supabase_client()
    if client is None:
        return None
    try:
        response = client.auth.get_user(token)
    except Exception as e:
        logger.info("Token rejected: %s", e)
        return None
    user = getattr(response, "user", None)
    if user is None:
        return None
    metadata = getattr(user, "user_metadata", None) or {}
    return {
        "id": user.id,
        "email": (user.email or "").lower(),
        "nickname": (metadata.get("nickname") or "").strip(),
    }


def get_or_create_profile(user_id: str, nickname: str = "") -> Dict[str, Any]:
    """
    Load a user's profile row, inserting one with the starting coins if absent.
    """
    client = _require_client()
    columns = "nickname, coins_balance, invite_code, vip_expires_at"
    try:
        response = client.table(PROFILE_TABLE).select(columns).eq("user_id", user_id).execute()
        if response.data:
            row = response.data[0]
        else:
            inserted = client.table(PROFILE_TABLE).insert(
                {"user_id": user_id, "nickname": nickname, "coins_balance": INITIAL_COINS}
            ).execute()
            row = inserted.data[0] if inserted.data else {"nickname": nickname, "coins_balance": INITIAL_COINS}
    except Exception as e:
        logger.error("Profile load failed for %s: %s", user_id, e)
        raise DatabaseUnavailableError(str(e)) from e

    balance = row.get("coins_balance")
    return {
        "nickname": row.get("nickname") or "",
        "coins_balance": INITIAL_COINS if balance is None else balance,
        "invite_code": row.get("invite_code"),
        "vip_expires_at": row.get("vip_expires_at"),
    }


def charge_coins(user_id: str, cost: int, email: Optional[str] = None) -> Optional[int]:
    """
    Deduct coins before a paid call. Admin accounts are never charged.

    Returns:
        The remaining balance, or None for admin accounts.

    Raises:
        InsufficientCoinsError: balance below cost
        DatabaseUnavailableError: profile read or update failed
    """
    if is_admin(email):
        return None

    profile = get_or_create_profile(user_id)
    balance = profile["coins_balance"] or 0
    if balance < cost:
        raise InsufficientCoinsError(cost, balance)

    client = _require_client()
    try:
        client.table(PROFILE_TABLE).update({"coins_balance": balance - cost}).eq("user_id", user_id).execute()
    except Exception as e:
        logger.error("Coin deduction failed for %s: %s", user_id, e)
        raise DatabaseUnavailableError("扣款失败，请重试") from e
    return balance - cost


def redeem_code(user_id: str, code: str) -> int:
    """
    Redeem a shop code through the `redeem_code` database function.

    Returns:
        Number of coins added.
    """
    client = _require_client()
    try:
        response = client.rpc("redeem_code", {"p_code": code, "p_user_id": user_id}).execute()
    except Exception as e:
        if "INVALID_OR_USED" in str(e):
            raise RedeemCodeError("兑换码无效或已被使用") from e
        logger.error("redeem_code rpc error: %s", e)
        raise DatabaseUnavailableError(str(e) or "兑换失败") from e
    added = response.data
    return added if isinstance(added, int) and not isinstance(added, bool) else 0


def assign_invite_code(user_id: str, rng=None) -> str:
    """
    Generate and store an invite code, retrying on unique collisions.
    An existing code is returned unchanged.
    """
    profile = get_or_create_profile(user_id)
    if profile.get("invite_code"):
        return profile["invite_code"]

    client = _require_client()
    for _ in range(INVITE_CODE_RETRIES):
        code = generate_invite_code(rng)
        try:
            response = (
                client.table(PROFILE_TABLE)
                .update({"invite_code": code})
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                logger.info("Invite code collision, retrying")
                continue
            logger.error("Invite code update failed: %s", e)
            raise DatabaseUnavailableError("生成失败，请重试") from e
        if response.data:
            return response.data[0].get("invite_code") or code
        return code
    raise DatabaseUnavailableError("生成失败，请重试")


def _find_user_id_by_email(client: Client, email: str) -> Optional[str]:
    users = client.auth.admin.list_users()
    for user in users or []:
        if (getattr(user, "email", None) or "").lower() == email:
            return user.id
    return None


def set_vip(target_email: str, duration: str) -> Dict[str, Any]:
    """
    Grant VIP to the account with the given email.

    Raises:
        ValueError: unknown duration or empty email
        UserNotFoundError: no account uses this email
    """
    email = (target_email or "").strip().lower()
    if not email:
        raise ValueError("请输入目标邮箱")
    expires_at = get_vip_expires_at(duration)

    client = _require_client()
    try:
        user_id = _find_user_id_by_email(client, email)
    except Exception as e:
        logger.error("list_users failed: %s", e)
        raise DatabaseUnavailableError(str(e)) from e
    if user_id is None:
        raise UserNotFoundError(f"未找到该邮箱对应的用户：{email}")

    try:
        existing = client.table(PROFILE_TABLE).select("user_id").eq("user_id", user_id).execute()
        if existing.data:
            client.table(PROFILE_TABLE).update({"vip_expires_at": expires_at}).eq("user_id", user_id).execute()
        else:
            client.table(PROFILE_TABLE).insert(
                {"user_id": user_id, "coins_balance": INITIAL_COINS, "vip_expires_at": expires_at}
            ).execute()
    except Exception as e:
        logger.error("VIP update failed for %s: %s", email, e)
        raise DatabaseUnavailableError(str(e)) from e

    logger.info("VIP granted to %s until %s", email, expires_at)
    return {"user_id": user_id, "email": email, "vip_expires_at": expires_at}


def _check_record_type(record_type: str):
    if record_type not in RECORD_TYPES:
        raise ValueError(f"未知记录类型: {record_type}")


def save_record(user_id: str, record_type: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
    _check_record_type(record_type)
    client = _require_client()
    try:
        response = client.table(RECORD_TABLE).insert(
            {"user_id": user_id, "type": record_type, "input_data": input_data}
        ).execute()
    except Exception as e:
        logger.error("%s record insert failed: %s", record_type, e)
        raise DatabaseUnavailableError(str(e)) from e
    if not response.data:
        raise DatabaseUnavailableError("写入被拒绝: 未返回数据")
    row = response.data[0]
    return {"id": row.get("id"), "created_at": row.get("created_at")}


def list_records(user_id: str, record_type: str, limit: int = RECORD_LIST_LIMIT) -> List[Dict[str, Any]]:
    """Own records of one type, newest first."""
    _check_record_type(record_type)
    client = _require_client()
    try:
        response = (
            client.table(RECORD_TABLE)
            .select("id, input_data, created_at")
            .eq("user_id", user_id)
            .eq("type", record_type)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except Exception as e:
        logger.error("%s list error: %s", record_type, e)
        raise DatabaseUnavailableError(str(e)) from e
    return [
        {"id": row.get("id"), "input_data": row.get("input_data") or {}, "created_at": row.get("created_at")}
        for row in response.data or []
    ]


def get_record(user_id: str, record_type: str, record_id: str) -> Optional[Dict[str, Any]]:
    _check_record_type(record_type)
    client = _require_client()
    try:
        response = (
            client.table(RECORD_TABLE)
            .select("id, input_data, created_at")
            .eq("id", record_id)
            .eq("user_id", user_id)
            .eq("type", record_type)
            .execute()
        )
    except Exception as e:
        logger.error("%s fetch error: %s", record_type, e)
        raise DatabaseUnavailableError(str(e)) from e
    if not response.data:
        return None
    row = response.data[0]
    return {"id": row.get("id"), "input_data": row.get("input_data") or {}, "created_at": row.get("created_at")}


# ================== 六济对话记录 ==================
def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def list_chat_sessions(user_id: str) -> List[Dict[str, Any]]:
    """Own chat sessions, most recently active first."""
    client = _require_client()
    try:
        response = (
            client.table(CHAT_SESSION_TABLE)
            .select("id, title, created_at, updated_at")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .execute()
        )
    except Exception as e:
        logger.error("获取会话列表失败: %s", e)
        raise DatabaseUnavailableError("获取会话列表失败") from e
    return response.data or []


def create_chat_session(user_id: str, title: str = "") -> Dict[str, Any]:
    client = _require_client()
    try:
        response = client.table(CHAT_SESSION_TABLE).insert(
            {"user_id": user_id, "title": title.strip() or DEFAULT_SESSION_TITLE}
        ).execute()
    except Exception as e:
        logger.error("创建会话失败: %s", e)
        raise DatabaseUnavailableError("创建会话失败") from e
    if not response.data:
        raise DatabaseUnavailableError("创建会话失败")
    return response.data[0]


def _check_session_owner(client: Client, user_id: str, session_id: str):
    try:
        response = (
            client.table(CHAT_SESSION_TABLE)
            .select("id")
            .eq("id", session_id)
            .eq("user_id", user_id)
            .execute()
        )
    except Exception as e:
        logger.error("session %s lookup error: %s", session_id, e)
        raise DatabaseUnavailableError(str(e)) from e
    if not response.data:
        raise ChatSessionNotFoundError("会话不存在或无权访问")


def rename_chat_session(user_id: str, session_id: str, title: str) -> None:
    client = _require_client()
    _check_session_owner(client, user_id, session_id)
    try:
        client.table(CHAT_SESSION_TABLE).update(
            {"title": title.strip() or DEFAULT_SESSION_TITLE, "updated_at": _now_iso()}
        ).eq("id", session_id).eq("user_id", user_id).execute()
    except Exception as e:
        logger.error("更新会话标题失败: %s", e)
        raise DatabaseUnavailableError("更新会话标题失败") from e


def delete_chat_session(user_id: str, session_id: str) -> None:
    """删除会话及其消息，只能删除自己的会话"""
    client = _require_client()
    _check_session_owner(client, user_id, session_id)
    try:
        client.table(CHAT_MESSAGE_TABLE).delete().eq("session_id", session_id).execute()
        client.table(CHAT_SESSION_TABLE).delete().eq("id", session_id).eq("user_id", user_id).execute()
    except Exception as e:
        logger.error("删除会话失败: %s", e)
        raise DatabaseUnavailableError("删除会话失败") from e


def list_chat_messages(user_id: str, session_id: str) -> List[Dict[str, Any]]:
    """Messages of one own session, oldest first."""
    client = _require_client()
    _check_session_owner(client, user_id, session_id)
    try:
        response = (
            client.table(CHAT_MESSAGE_TABLE)
            .select("id, role, content, is_reasoning, created_at")
            .eq("session_id", session_id)
            .order("created_at")
            .execute()
        )
    except Exception as e:
        logger.error("获取消息失败: %s", e)
        raise DatabaseUnavailableError("获取消息失败") from e
    return response.data or []


def append_chat_messages(user_id: str, session_id: str, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    批量保存消息并刷新会话的 updated_at。

    Raises:
        ChatSessionNotFoundError: 会话不属于该用户
    """
    client = _require_client()
    _check_session_owner(client, user_id, session_id)
    rows = [
        {
            "session_id": session_id,
            "role": m["role"],
            "content": m["content"],
            "is_reasoning": bool(m.get("is_reasoning", False)),
        }
        for m in messages
    ]
    if not rows:
        return []
    try:
        response = client.table(CHAT_MESSAGE_TABLE).insert(rows).execute()
        client.table(CHAT_SESSION_TABLE).update({"updated_at": _now_iso()}).eq("id", session_id).execute()
    except Exception as e:
        logger.error("保存消息失败: %s", e)
        raise DatabaseUnavailableError("保存消息失败") from e
    return response.data or []
