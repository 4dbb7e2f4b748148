"""
FastAPI Backend for Fortune Teller (六济)

Provides RESTful API endpoints for charts, energy, relations, I Ching,
MBTI, the streamed sage chat with its saved sessions and the coin shop.
"""
import logging
import os
from pathlib import Path
from typing import Optional, List, Dict, Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from dotenv import load_dotenv

from bazi_utils import draw_hexagram_svg, render_interaction_graph
from coins import (
    COINS_DIVINE,
    chat_cost,
    chat_cost_message,
    divine_cost_message,
    is_admin,
    is_lifetime_vip,
    is_vip,
)
from db_utils import (
    RECORD_TYPES,
    ChatSessionNotFoundError,
    DatabaseUnavailableError,
    InsufficientCoinsError,
    RedeemCodeError,
    UserNotFoundError,
    append_chat_messages,
    assign_invite_code,
    charge_coins,
    create_chat_session,
    delete_chat_session,
    get_or_create_profile,
    get_record,
    get_user_from_token,
    list_chat_messages,
    list_chat_sessions,
    list_records,
    redeem_code,
    rename_chat_session,
    save_record,
    set_vip,
)
from energy import EnergyThresholds, calculate_energy_profile
from iching import ZhouyiCalculator, analyze_hexagram
from interactions import ResolverOptions, calculate_interactions
from llm_client import LLMNotConfiguredError, get_llm_client
from logic import StemBranchChart, build_chart_report, calculate_chart, calculate_luck_cycles
from mbti import Answer, Question, score_answers
from sage import is_safe_input, last_user_message, stream_divination, stream_sage_reply

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Cache-Control": "no-cache", "X-Content-Type-Options": "nosniff"}

# --- Pydantic Models for Request/Response ---

class BirthData(BaseModel):
    """Birth data for Bazi calculation."""
    birth_year: int = Field(..., ge=1900, le=2100, description="Year of birth (e.g., 1990)")
    month: int = Field(..., ge=1, le=12, description="Month of birth (1-12)")
    day: int = Field(..., ge=1, le=31, description="Day of birth (1-31)")
    hour: int = Field(..., ge=0, le=23, description="Hour of birth (0-23)")
    minute: int = Field(0, ge=0, le=59, description="Minute of birth (0-59)")
    gender: str = Field("男", pattern="^(男|女)$", description="Gender (男/女)")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="Longitude for true solar time correction")


class ChartRequest(BaseModel):
    """Either birth data or four ready-made pillars such as ["甲子", "丙寅", "戊辰", "庚申"]."""
    birth: Optional[BirthData] = None
    pillars: Optional[List[str]] = Field(None, description="Year/month/day/hour pillars")
    include_luck: bool = Field(True, description="Include DaYun/LiuNian/LiuYue (birth data only)")


class ThresholdOverrides(BaseModel):
    follow: Optional[float] = None
    strong: Optional[float] = None
    balanced: Optional[float] = None
    weak: Optional[float] = None
    dry: Optional[float] = None
    slightly_dry: Optional[float] = None
    slightly_wet: Optional[float] = None
    wet: Optional[float] = None
    climate_sufficient_pct: Optional[float] = None
    inclusive: Optional[bool] = None


class EnergyRequest(ChartRequest):
    thresholds: Optional[ThresholdOverrides] = None


class InteractionRequest(ChartRequest):
    suppress_subsumed: bool = Field(False, description="Hide pairwise relations inside a complete triple")


class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    use_reasoning: bool = False
    use_search: bool = False


class CastRequest(BaseModel):
    lines: Optional[List[int]] = Field(None, description="Six line values 6/7/8/9 from bottom to top; cast when omitted")
    include_svg: bool = True


class DivineRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = ""
    hexagram_info: Optional[Dict[str, Any]] = Field(None, alias="hexagramInfo")
    date: Optional[str] = None


class MbtiRequest(BaseModel):
    questions: List[Question]
    answers: List[Answer]


class RedeemRequest(BaseModel):
    code: str = ""


class SetVipRequest(BaseModel):
    target_email: str = ""
    duration: str = ""


class RecordRequest(BaseModel):
    input_data: Dict[str, Any]


class SessionRequest(BaseModel):
    title: str = ""


class StoredMessage(ChatMessage):
    model_config = ConfigDict(populate_by_name=True)

    is_reasoning: bool = Field(False, alias="isReasoning")


class SessionMessagesRequest(BaseModel):
    messages: List[StoredMessage] = Field(default_factory=list)


# --- FastAPI App Initialization ---

app = FastAPI(
    title="六济 API",
    description="八字排盘、五行能量、干支关系、六爻起卦、MBTI 与六济对话",
    version="v1.0.0"
)

# Configure CORS for mobile/web access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Helper Functions ---

def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """Resolve `Authorization: Bearer <token>` to the signed-in user."""
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    user = get_user_from_token(token)
    if not user:
        raise HTTPException(status_code=401, detail="请先登录")
    return user


def resolve_chart(request: ChartRequest):
    """Returns (chart, time_info)."""
    if request.birth is not None:
        b = request.birth
        try:
            return calculate_chart(b.birth_year, b.month, b.day, b.hour, b.minute, b.longitude)
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Bazi calculation error: {str(e)}")
    if request.pillars is not None:
        try:
            chart = StemBranchChart.from_pillars(request.pillars)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if not chart.is_valid():
            raise HTTPException(status_code=400, detail=f"无法识别的干支: {request.pillars}")
        return chart, None
    raise HTTPException(status_code=400, detail="请提供出生信息或四柱干支")


def charge_or_raise(user: Dict[str, Any], cost: int, message: str):
    try:
        charge_coins(user["id"], cost, user.get("email"))
    except InsufficientCoinsError as e:
        raise HTTPException(status_code=402, detail={"error": message, "need_coins": e.need})
    except DatabaseUnavailableError:
        raise HTTPException(status_code=500, detail="扣款失败，请重试")


def require_llm():
    try:
        return get_llm_client()
    except LLMNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e))


def check_record_type(record_type: str):
    if record_type not in RECORD_TYPES:
        raise HTTPException(status_code=404, detail=f"未知记录类型: {record_type}")


# --- API Endpoints ---

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "六济 API is running"}


@app.post("/api/chart")
async def get_bazi_chart(request: ChartRequest):
    """Four pillars with ten gods, hidden stems, stages, nayin and void branches."""
    chart, time_info = resolve_chart(request)
    report = build_chart_report(chart)
    report["time_correction"] = time_info
    if request.birth is not None and request.include_luck:
        b = request.birth
        report["luck"] = calculate_luck_cycles(b.birth_year, b.month, b.day, b.hour, b.minute, b.gender, b.longitude)
    return report


@app.post("/api/energy")
async def get_energy(request: EnergyRequest):
    chart, _ = resolve_chart(request)
    thresholds = None
    if request.thresholds is not None:
        thresholds = EnergyThresholds(**request.thresholds.model_dump(exclude_none=True))
    profile = calculate_energy_profile(chart, thresholds)
    return {"chart": [p.gan_zhi for p in chart.pillars], **profile.to_dict()}


@app.post("/api/interactions")
async def get_interactions(request: InteractionRequest):
    chart, _ = resolve_chart(request)
    graph = calculate_interactions(chart, ResolverOptions(suppress_subsumed=request.suppress_subsumed))
    return graph.to_dict()


@app.post("/api/interactions/graph")
async def get_interaction_graph(request: InteractionRequest):
    chart, _ = resolve_chart(request)
    graph = calculate_interactions(chart, ResolverOptions(suppress_subsumed=request.suppress_subsumed))
    return Response(content=render_interaction_graph(graph), media_type="image/svg+xml")


@app.post("/api/chat")
async def chat(request: ChatRequest, user: Dict[str, Any] = Depends(get_current_user)):
    """Coin-charged, streamed reply from 六济."""
    if not request.messages:
        raise HTTPException(status_code=400, detail="消息列表不能为空")
    messages = [m.model_dump() for m in request.messages]
    if not is_safe_input(last_user_message(messages)):
        raise HTTPException(status_code=400, detail="Invalid input detected")

    client = require_llm()
    charge_or_raise(
        user,
        chat_cost(request.use_reasoning, request.use_search),
        chat_cost_message(request.use_reasoning, request.use_search),
    )
    logger.info("chat user=%s reasoning=%s search=%s", user["id"], request.use_reasoning, request.use_search)
    return StreamingResponse(
        stream_sage_reply(messages, request.use_reasoning, request.use_search, client=client),
        media_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
    )


@app.post("/api/iching/cast")
async def cast_hexagram(request: CastRequest):
    try:
        result = analyze_hexagram(request.lines) if request.lines is not None else ZhouyiCalculator().cast_hexagram()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if request.include_svg:
        result["main_svg"] = draw_hexagram_svg(result["main"]["code"], result["moving_positions"])
        result["changed_svg"] = draw_hexagram_svg(result["changed"]["code"]) if result["changed"] else None
    return result


@app.post("/api/divine")
async def divine(request: DivineRequest, user: Dict[str, Any] = Depends(get_current_user)):
    """Coin-charged, streamed reading of a cast hexagram."""
    question = request.question.strip()
    if not question or not request.hexagram_info:
        raise HTTPException(status_code=400, detail="问题和卦象信息不能为空")
    if not is_safe_input(question):
        raise HTTPException(status_code=400, detail="Invalid input detected")

    try:
        client = get_llm_client()
    except LLMNotConfiguredError:
        raise HTTPException(status_code=500, detail="天机遮蔽，请稍后再试")
    charge_or_raise(user, COINS_DIVINE, divine_cost_message())
    return StreamingResponse(
        stream_divination(question, request.hexagram_info, request.date, client=client),
        media_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
    )


@app.post("/api/mbti/score")
async def mbti_score(request: MbtiRequest):
    try:
        return score_answers(request.questions, request.answers).model_dump()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/user/profile")
async def user_profile(user: Dict[str, Any] = Depends(get_current_user)):
    try:
        profile = get_or_create_profile(user["id"], user.get("nickname", ""))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))
    expires_at = profile.get("vip_expires_at")
    return {
        **profile,
        "is_vip": is_vip(expires_at),
        "is_lifetime_vip": is_lifetime_vip(expires_at),
        "is_admin": is_admin(user.get("email")),
    }


@app.post("/api/shop/redeem")
async def shop_redeem(request: RedeemRequest, user: Dict[str, Any] = Depends(get_current_user)):
    code = request.code.strip()
    if not code:
        raise HTTPException(status_code=400, detail="请输入兑换码")
    try:
        added = redeem_code(user["id"], code)
    except RedeemCodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e) or "兑换失败")
    return {"success": True, "added": added, "message": f"成功到账 {added} 铜币"}


@app.post("/api/user/invite-code")
async def invite_code(user: Dict[str, Any] = Depends(get_current_user)):
    try:
        return {"invite_code": assign_invite_code(user["id"])}
    except DatabaseUnavailableError:
        raise HTTPException(status_code=500, detail="生成失败，请重试")


@app.post("/api/admin/set-vip")
async def admin_set_vip(request: SetVipRequest, user: Dict[str, Any] = Depends(get_current_user)):
    if not is_admin(user.get("email")):
        raise HTTPException(status_code=403, detail="无权限")
    try:
        result = set_vip(request.target_email, request.duration)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, **result}


@app.post("/api/records/{record_type}")
async def create_record(record_type: str, request: RecordRequest, user: Dict[str, Any] = Depends(get_current_user)):
    check_record_type(record_type)
    try:
        return save_record(user["id"], record_type, request.input_data)
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/records/{record_type}")
async def read_records(record_type: str, id: Optional[str] = None, user: Dict[str, Any] = Depends(get_current_user)):
    check_record_type(record_type)
    try:
        if id:
            record = get_record(user["id"], record_type, id)
            if record is None:
                raise HTTPException(status_code=404, detail="未找到")
            return record
        return list_records(user["id"], record_type)
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/chat-sessions")
async def get_chat_sessions(user: Dict[str, Any] = Depends(get_current_user)):
    try:
        return list_chat_sessions(user["id"])
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/chat-sessions")
async def new_chat_session(request: SessionRequest, user: Dict[str, Any] = Depends(get_current_user)):
    try:
        return create_chat_session(user["id"], request.title)
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/chat-sessions/{session_id}")
async def get_chat_messages(session_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    try:
        return list_chat_messages(user["id"], session_id)
    except ChatSessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/api/chat-sessions/{session_id}")
async def update_chat_session(session_id: str, request: SessionRequest, user: Dict[str, Any] = Depends(get_current_user)):
    try:
        rename_chat_session(user["id"], session_id, request.title)
    except ChatSessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True}


@app.delete("/api/chat-sessions/{session_id}")
async def remove_chat_session(session_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    try:
        delete_chat_session(user["id"], session_id)
    except ChatSessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True}


@app.post("/api/chat-sessions/{session_id}/messages")
async def save_chat_messages(session_id: str, request: SessionMessagesRequest,
                             user: Dict[str, Any] = Depends(get_current_user)):
    if not request.messages:
        raise HTTPException(status_code=400, detail="消息列表不能为空")
    try:
        return append_chat_messages(user["id"], session_id, [m.model_dump() for m in request.messages])
    except ChatSessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=500, detail=str(e))


# --- Run with: uvicorn main:app --reload ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
