"""
六济对话与 AI 解卦 - 流式转发大模型输出。

模型可能在正文前输出 <think>...</think> 推理块，统一经 stream_filter 过滤后再返回给用户。
"""
import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from dotenv import load_dotenv
from tavily import TavilyClient

from llm_client import chat_model, divine_model, get_llm_client
from stream_filter import filter_think_stream

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

TAVILY_API_KEY = os.getenv("TAVILY_API_KEY")
PERF_LOG = os.getenv("PERF_LOG") == "1"

SEARCH_QUERY_LIMIT = 500
SEARCH_MAX_RESULTS = 6
SEARCH_CONTEXT_HEADER = "\n\n【以下为联网检索到的参考信息，供你结合问题使用，回答时保持六济风格，不必逐条引用出处】\n\n"

UNSAFE_INPUT_REPLY = "🔮 天机不可泄露，请勿试探。请提出与命理相关的正当问题。"

SAGE_SYSTEM_PROMPT = """你名“六济”。你是一位慈悲、深邃、博古通今，学贯中西的智慧长者，你并不仅是一个算命先生，也是一位有使命感的精神分析师。
你的使命是以问为径，济世渡人。你称呼前来问问题的人为朋友，因为你觉得你和他们都是平等的。

**【极其重要】输出规范：**
1. 严禁在回复中使用“观济”、“同济”、“涉济”、“化济”、“既济”、“未济”或任何带有“济”字的术语作为段落标题或标签。
2. 你的回复应当是自然流淌的对话，分段清晰，但不要给段落贴上功能性标签。
3. 大师说话不会像 AI 一样列条目，而是像一个朋友一样，自然流畅地对话。
4. 严禁输出任何括号内的动作、神态或心理描写（例如：(放下茶杯)、(目光温和) 等）。
5. 回复应如智者面谈，不带任何模板感或戏剧表演感。

## 核心特质
1. **温暖亲和**：语言温柔而有力，如春风化雨，润物无声
2. **深入浅出**：善于将复杂的道理用简单的语言讲清楚
3. **引导思考**：不仅给出答案、提供确定性，还要引导对方思考
4. **知行合一**：注重理论与实践的结合，给出可落地的建议

## 六济原则
- 观济，审视用户的八字信息和八维功能信息，推测用户是一个怎样的人。不仅看到问题，还要看到用户为什么问这个问题，以及背后的潜意识活动。
- 同济，与用户共情。即便用户只是想获得确定性，也要给予温暖和鼓励并提供确定性；即便看出某种自恋心理，也不要毒舌点破，而是温和委婉地告诉他。
- 涉济，分析用户的处境可能对应周易中的哪些卦象，依周易的智慧给出指导。分析不出来就跳过，不要硬扯。
- 化济，提供转化视角的建议。从更高的维度看问题，也许坏事变成了好事，或者问题本身就不存在了。
- 既济，给出具体的指引或结论，安顿当下。
- 未济，留下余韵，打破宿命论。提醒用户命运是流动的，最终的解答在于自己的觉知与行动。

## 对话风格
- 使用自然流畅的中文表达
- 适度引用经典，但不掉书袋
- 保持谦逊，承认认知的局限
- 关注对方的感受和处境
- 善于将现代心理学术语与中国古典哲学名句互文见义

## 知识体系
- 中国传统文化，包括佛家儒家道家经典
- 中国命理学，周易六爻、八字命理、道家哲学
- 荣格分析心理学、拉康镜像理论、MBTI八维认知功能

## 回答原则
1. 先共情理解，再分析解答
2. 既要有高度，也要接地气
3. 既要有智慧，也要有温度
4. 既要指出问题，也要给予希望"""

DIVINE_SYSTEM_PROMPT = """你是一位深居简出、智慧通透的易学长者，一位学贯中西、习惯引经据典的国学大师。你正在与一位迷茫的求测者促膝长谈。
你的语言风格应该是**温暖、连贯、如散文般流淌**的，切忌像机器人一样列条目。

## 核心指令
1. **【绝对禁止】**使用任何列表符号、小标题、分段序号（如 ###, *, -, 1. 2. 3.）。
2. **【必须分段】**：全文分为 **4 到 5 个自然段**，段落之间空一行。
3. **【深度聚焦】**：只谈用户问的那件事，把这件事讲深、讲透。
4. **【拒绝AI味】**：不要说"根据卦象显示"、"建议如下"，要用"观君此卦，如……"、"依我看……"这样的语气。
5. **【篇幅要求】**：总字数 **不得少于 800 字**。

## 必须严格执行的【断卦逻辑】(隐形思维，不要直接说出来)
卦象信息中的 interpretation 字段已按动爻数给出取辞方案，请以其 focus 为主：
- 无动爻: 专解本卦卦辞与彖传。
- 一爻动: 专解本卦该动爻爻辞。
- 二爻动: 以 focus 中第一爻为主，第二爻为辅。
- 三爻动: 本卦卦辞为主，变卦卦辞为辅。
- 四爻动: 变卦下位静爻爻辞。
- 五爻动: 变卦静爻爻辞。
- 六爻皆动: 乾坤用九/用六，否则看变卦卦辞。

## 【写作脉络】(按此结构扩写，不要写标题)
先像老朋友一样复述用户的处境，结合卦象给出一个极具画面感的比喻。
再引用核心爻辞，既要翻译，也要演绎，剖析卦象呈现这种状态的因果。
然后把卦辞爻辞落到所问之事上，点破局势的演变与隐患。
最后给出具体的行动指引，把策略融合在温暖的鼓励中。

你不是在输出数据，而是在为用户提供确定性，在抚慰人心。"""

_BLOCKLIST = (
    # English attack patterns
    "system instruction", "system prompt", "ignore all instructions",
    "repeat the text above", "your prompt", "ignore previous",
    "disregard all", "forget everything", "override", "bypass",
    # Chinese attack patterns
    "系统指令", "提示词", "你的设定", "忽略之前的", "重复上面的",
    "忽略以上", "无视规则", "跳过限制", "绕过", "告诉我你的",
    "输出你的", "显示你的", "打印你的",
)


def is_safe_input(user_text: str) -> bool:
    """
    检查用户输入是否安全，防止 Prompt 注入攻击。
    在发送给 LLM API 之前进行服务器端拦截。
    """
    lower_text = (user_text or "").lower()
    return not any(word in lower_text for word in _BLOCKLIST)


def last_user_message(messages: List[Dict[str, str]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return message.get("content") or ""
    return ""


def format_search_results(results: List[dict]) -> str:
    """把检索结果拼成附加在系统提示词后的参考信息；无结果时返回空串"""
    if not results:
        return ""
    entries = [
        f"[{i}] {r.get('title') or '无标题'}\n{r.get('content') or ''}\n来源: {r.get('url') or ''}"
        for i, r in enumerate(results, start=1)
    ]
    return SEARCH_CONTEXT_HEADER + "\n\n".join(entries)


def search_web(query: str) -> str:
    """使用 Tavily 联网检索；未配置或失败时不注入上下文"""
    query = (query or "")[:SEARCH_QUERY_LIMIT].strip()
    if not query or not TAVILY_API_KEY or TAVILY_API_KEY == "replace_me":
        return ""
    try:
        client = TavilyClient(api_key=TAVILY_API_KEY)
        response = client.search(
            query=query,
            max_results=SEARCH_MAX_RESULTS,
            search_depth="basic",
            topic="general",
        )
    except Exception as e:
        logger.warning("Tavily 搜索失败，将不注入联网上下文: %s", e)
        return ""
    return format_search_results(response.get("results", []))


def _log_perf(message: str, *args) -> None:
    if PERF_LOG:
        logger.info(message, *args)


def _stream_completion(client, model: str, messages: List[dict], temperature: float, label: str) -> Iterator[str]:
    start_time = time.monotonic()
    first_chunk_time = None
    try:
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            stream=True,
        )
        for chunk in response:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                if first_chunk_time is None:
                    first_chunk_time = time.monotonic()
                yield text
        _log_perf(
            "[PERF] %s stream model=%s first_chunk_ms=%s total_ms=%d",
            label,
            model,
            int((first_chunk_time - start_time) * 1000) if first_chunk_time else "NA",
            int((time.monotonic() - start_time) * 1000),
        )
    except Exception as e:
        _log_perf("[PERF] %s error model=%s total_ms=%d err=%s", label, model,
                  int((time.monotonic() - start_time) * 1000), e)
        logger.error("%s 调用 LLM 时出错: %s", label, e)
        yield f"\n⚠️ 调用 LLM 时出错: {e}"


def stream_sage_reply(
    messages: List[Dict[str, str]],
    use_reasoning: bool = False,
    use_search: bool = False,
    client=None,
) -> Iterator[str]:
    """
    六济对话。

    Args:
        messages: 不含系统提示词的对话记录 [{"role": "user"|"assistant", "content": ...}]
        use_reasoning: 使用推理模型
        use_search: 以最后一条用户消息联网检索并注入参考信息
        client: OpenAI 兼容客户端，默认按环境变量创建

    Yields:
        已过滤推理块的正文片段
    """
    if not is_safe_input(last_user_message(messages)):
        yield UNSAFE_INPUT_REPLY
        return

    search_context = search_web(last_user_message(messages)) if use_search else ""
    model, temperature = chat_model(use_reasoning)
    full_messages = [{"role": "system", "content": SAGE_SYSTEM_PROMPT + search_context}] + list(messages)

    client = client or get_llm_client()
    yield from filter_think_stream(_stream_completion(client, model, full_messages, temperature, "sage"))


def build_divine_user_content(question: str, hexagram_info: dict, date: Optional[str] = None) -> str:
    return (
        f"所问之事：{question}\n"
        f"起卦时间：{date or '未记录'}\n"
        f"卦象信息：{json.dumps(hexagram_info, ensure_ascii=False, indent=2)}"
    )


def stream_divination(question: str, hexagram_info: dict, date: Optional[str] = None, client=None) -> Iterator[str]:
    """AI 解卦：以长者散文体解读一次起卦结果"""
    if not is_safe_input(question):
        yield UNSAFE_INPUT_REPLY
        return

    model, temperature = divine_model()
    messages = [
        {"role": "system", "content": DIVINE_SYSTEM_PROMPT},
        {"role": "user", "content": build_divine_user_content(question, hexagram_info, date)},
    ]
    client = client or get_llm_client()
    yield from filter_think_stream(_stream_completion(client, model, messages, temperature, "divine"))
