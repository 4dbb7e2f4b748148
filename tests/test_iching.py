import random

import pytest

from iching import HEXAGRAMS, ZhouyiCalculator, analyze_hexagram, find_hexagram, yao_label


def test_table_complete():
    assert len(HEXAGRAMS) == 64
    assert sorted(h["number"] for h in HEXAGRAMS.values()) == list(range(1, 65))


def test_trigram_order_is_bottom_to_top():
    tai = find_hexagram("111000")
    assert tai["name"] == "泰"
    assert tai["full_name"] == "地天泰"
    assert tai["lower"] == "乾"
    assert tai["upper"] == "坤"
    assert find_hexagram("111111")["full_name"] == "乾为天"


def test_yao_label():
    assert yao_label(0, True) == "初九"
    assert yao_label(1, False) == "六二"
    assert yao_label(5, False) == "上六"


def test_no_moving_lines():
    result = analyze_hexagram([7, 7, 7, 7, 7, 7])
    assert result["main"]["name"] == "乾"
    assert result["changed"] is None
    assert not result["has_moving_lines"]
    assert result["interpretation"]["rule"] == 0
    assert result["interpretation"]["focus"][0]["kind"] == "guaci"


def test_one_moving_line():
    result = analyze_hexagram([9, 7, 7, 8, 8, 8])
    assert result["main"]["name"] == "泰"
    assert result["changed"]["name"] == "升"
    assert result["moving_positions"] == [1]
    focus = result["interpretation"]["focus"]
    assert result["interpretation"]["rule"] == 1
    assert focus[0]["position"] == 1
    assert focus[0]["label"] == "泰卦初九"


def test_two_moving_lines_prefer_yin():
    focus = analyze_hexagram([6, 7, 9, 8, 8, 8])["interpretation"]["focus"]
    assert [f["position"] for f in focus] == [1, 3]


def test_two_moving_lines_same_polarity_prefer_upper():
    focus = analyze_hexagram([9, 7, 9, 8, 8, 8])["interpretation"]["focus"]
    assert [f["position"] for f in focus] == [3, 1]


def test_three_moving_lines():
    interpretation = analyze_hexagram([9, 9, 9, 8, 8, 8])["interpretation"]
    assert interpretation["rule"] == 3
    assert [f["source"] for f in interpretation["focus"]] == ["main", "changed"]


def test_four_moving_lines_use_lower_static_line_of_changed():
    focus = analyze_hexagram([9, 9, 9, 9, 8, 8])["interpretation"]["focus"]
    assert focus[0]["source"] == "changed"
    assert focus[0]["position"] == 5


def test_five_moving_lines():
    focus = analyze_hexagram([9, 9, 9, 9, 9, 8])["interpretation"]["focus"]
    assert focus[0]["source"] == "changed"
    assert focus[0]["position"] == 6


def test_six_moving_lines():
    qian = analyze_hexagram([9] * 6)
    assert qian["changed"]["name"] == "坤"
    assert qian["interpretation"]["focus"][0]["kind"] == "yongjiu"

    kun = analyze_hexagram([6] * 6)
    assert kun["changed"]["name"] == "乾"
    assert kun["interpretation"]["focus"][0]["kind"] == "yongliu"

    other = analyze_hexagram([9, 6, 9, 6, 9, 6])
    assert other["interpretation"]["focus"][0] == {
        "source": "changed",
        "kind": "guaci",
        "position": None,
        "label": f"{other['changed']['full_name']}卦辞",
        "meaning": other["changed"]["meaning"],
    }


@pytest.mark.parametrize("lines", [[7, 7, 7, 7, 7], [7, 7, 7, 7, 7, 5], [7, 7, 7, 7, 7, 7, 7]])
def test_invalid_lines(lines):
    with pytest.raises(ValueError):
        analyze_hexagram(lines)


def test_cast_is_reproducible_with_seed():
    first = ZhouyiCalculator(random.Random(7)).cast()
    second = ZhouyiCalculator(random.Random(7)).cast()
    assert first == second
    assert len(first) == 6
    assert set(first) <= {6, 7, 8, 9}


def test_cast_hexagram():
    result = ZhouyiCalculator(random.Random(1)).cast_hexagram()
    assert result["main"] is not None
    assert len(result["line_types"]) == 6
