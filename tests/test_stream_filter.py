import asyncio
import random
from itertools import combinations

import pytest

from stream_filter import ThinkBlockFilter, afilter_think_stream, filter_think_stream

TEXT = "Hello <think>secret</think> world"


def run(fragments, **kwargs):
    return "".join(filter_think_stream(fragments, **kwargs))


def test_block_removed():
    assert run([TEXT]) == "Hello  world"


def test_markers_split_across_fragments():
    assert run(["Hel", "lo <th", "ink>sec", "ret</th", "ink> world"]) == "Hello  world"


def test_single_character_fragments():
    assert run(list(TEXT)) == "Hello  world"


def test_multiple_blocks():
    assert run(["a<think>1</think>b<think>2</think>c"]) == "abc"


def test_text_without_markers_passes_through():
    assert run(["plain ", "text</think>"]) == "plain text</think>"


def test_unclosed_block_is_released_on_flush():
    assert run(["a<think>xyz"]) == "a<think>xyz"


def test_partial_start_marker_released_on_flush():
    think_filter = ThinkBlockFilter()
    assert think_filter.feed("abc<thi") == "abc"
    assert think_filter.flush() == "<thi"


def test_overlong_block_disables_filter(caplog):
    think_filter = ThinkBlockFilter(max_think_chars=5)
    assert think_filter.feed("<think>123456") == "<think>123456"
    assert think_filter.disabled
    assert not think_filter.inside
    assert think_filter.feed("</think>x") == "</think>x"
    assert "仍未闭合" in caplog.text


def test_inside_state():
    think_filter = ThinkBlockFilter()
    think_filter.feed("<think>hmm")
    assert think_filter.inside
    think_filter.feed("</think>")
    assert not think_filter.inside


def test_empty_markers_rejected():
    with pytest.raises(ValueError):
        ThinkBlockFilter(start="")


def test_async_stream():
    async def source():
        for fragment in ["Hel", "lo <th", "ink>sec", "ret</th", "ink> world"]:
            yield fragment

    async def collect():
        return "".join([chunk async for chunk in afilter_think_stream(source())])

    assert asyncio.run(collect()) == "Hello  world"


def split_at(text, cuts):
    bounds = [0, *cuts, len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


def every_split(text, max_cuts=3):
    for n in range(1, max_cuts + 1):
        for cuts in combinations(range(1, len(text)), n):
            yield split_at(text, cuts)


def test_block_removed_for_every_split():
    text = "ab<think>xyz</think>cd"
    outs = {run(fragments) for fragments in every_split(text)}
    assert outs == {"abcd"}


def test_block_at_cap_removed_for_every_split():
    text = "<think>" + "y" * 10 + "</think>z"
    outs = {run(fragments, max_think_chars=10) for fragments in every_split(text, max_cuts=2)}
    assert outs == {"z"}


def test_end_marker_split_near_cap():
    assert run(["<think>yyyyyyyyyy</thi", "nk>z"], max_think_chars=12) == "z"


def test_marker_free_text_is_identity():
    rng = random.Random(20240601)
    # 字母表里没有 i/n，拼不出完整的 <think>
    alphabet = "ab <>/thk六济\n"
    for _ in range(200):
        text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 40)))
        cuts = sorted(rng.sample(range(1, len(text)), min(len(text) - 1, rng.randint(0, 5)))) if len(text) > 1 else []
        assert run(split_at(text, cuts)) == text
