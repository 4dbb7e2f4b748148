"""
流式过滤器：从模型输出中剔除 <think>...</think> 思考块。

片段大小不定，标记可能被拆在两段之间，因此只暂存足以识别半截标记的尾部。
思考块始终未闭合或超过上限时，原样放出。
"""
import logging
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator

logger = logging.getLogger(__name__)

THINK_START = "<think>"
THINK_END = "</think>"
THINK_BUFFER_LIMIT = 8192


def _partial_marker_len(text: str, marker: str) -> int:
    """text 末尾可能是 marker 前缀的最长长度"""
    for size in range(min(len(text), len(marker) - 1), 0, -1):
        if marker.startswith(text[-size:]):
            return size
    return 0


class ThinkBlockFilter:
    """块外 / 块内两状态扫描器"""

    def __init__(self, start: str = THINK_START, end: str = THINK_END, max_think_chars: int = THINK_BUFFER_LIMIT):
        if not start or not end:
            raise ValueError("起止标记不能为空")
        self.start = start
        self.end = end
        self.max_think_chars = max_think_chars
        self._pending = ""
        self._think = ""
        self._inside = False
        self._disabled = False

    @property
    def inside(self) -> bool:
        return self._inside

    @property
    def disabled(self) -> bool:
        return self._disabled

    def feed(self, fragment: str) -> str:
        """吃进一个片段，返回此刻可以输出的文本"""
        if self._disabled:
            return fragment
        if not fragment:
            return ""

        buf = self._pending + fragment
        self._pending = ""
        out = []

        while buf:
            if not self._inside:
                idx = buf.find(self.start)
                if idx == -1:
                    keep = _partial_marker_len(buf, self.start)
                    out.append(buf[:len(buf) - keep])
                    self._pending = buf[len(buf) - keep:]
                    buf = ""
                else:
                    out.append(buf[:idx])
                    buf = buf[idx + len(self.start):]
                    self._inside = True
                    self._think = ""
                continue

            search_from = max(0, len(self._think) - len(self.end) + 1)
            combined = self._think + buf
            idx = combined.find(self.end, search_from)
            if idx == -1:
                self._think = combined
                buf = ""
                # 末尾可能是半截结束标记，不计入上限
                held = _partial_marker_len(self._think, self.end)
                if len(self._think) - held > self.max_think_chars:
                    logger.warning("思考块超过 %d 字仍未闭合，原样放出", self.max_think_chars)
                    out.append(self.start + self._think)
                    self._think = ""
                    self._inside = False
                    self._disabled = True
            else:
                buf = combined[idx + len(self.end):]
                self._think = ""
                self._inside = False

        return "".join(out)

    def flush(self) -> str:
        """流结束时放出暂存内容"""
        out = self._pending
        self._pending = ""
        if self._inside:
            out += self.start + self._think
            self._think = ""
            self._inside = False
        return out


def filter_think_stream(fragments: Iterable[str], **kwargs) -> Iterator[str]:
    think_filter = ThinkBlockFilter(**kwargs)
    for fragment in fragments:
        visible = think_filter.feed(fragment)
        if visible:
            yield visible
    tail = think_filter.flush()
    if tail:
        yield tail


async def afilter_think_stream(fragments: AsyncIterable[str], **kwargs) -> AsyncIterator[str]:
    think_filter = ThinkBlockFilter(**kwargs)
    async for fragment in fragments:
        visible = think_filter.feed(fragment)
        if visible:
            yield visible
    tail = think_filter.flush()
    if tail:
        yield tail
