import pytest

from energy import (
    ClimateResult,
    EnergyCalculator,
    EnergyThresholds,
    StrengthResult,
    calculate_energy_profile,
    category_element,
    classify_climate,
    classify_strength,
)
from logic import StemBranchChart


def chart(*pillars):
    return StemBranchChart.from_pillars(list(pillars))


@pytest.mark.parametrize("percent, level", [
    (95.0, "专旺格"),
    (90.0, "专旺格"),
    (89.9, "身强"),
    (72.0, "身强"),
    (60.0, "中和"),
    (50.0, "中和"),
    (49.9, "身弱"),
    (24.0, "身弱"),
    (23.9, "身弱格"),
])
def test_classify_strength(percent, level):
    assert classify_strength(percent)[0] == level


def test_exclusive_thresholds_move_boundary_values_down():
    exclusive = EnergyThresholds(inclusive=False)
    assert classify_strength(90.0, exclusive) == ("身强", True)
    assert classify_strength(24.0, exclusive) == ("身弱格", False)
    assert classify_climate(400.0, exclusive)[0] == "偏燥"


@pytest.mark.parametrize("temp, level, need", [
    (500.0, "燥", "水"),
    (200.0, "偏燥", "水"),
    (0.0, "中和", None),
    (-200.0, "偏湿", "火"),
    (-450.0, "湿", "火"),
])
def test_classify_climate(temp, level, need):
    result = classify_climate(temp)
    assert result[0] == level
    assert result[3] == need


def test_category_element():
    assert category_element("木", "比劫") == "木"
    assert category_element("木", "食伤") == "火"
    assert category_element("木", "财星") == "土"
    assert category_element("木", "官杀") == "金"
    assert category_element("木", "印枭") == "水"
    assert category_element(None, "印枭") is None


def test_scores_are_consistent():
    profile = calculate_energy_profile(chart("甲子", "丙寅", "甲午", "庚午"))

    assert profile.total > 0
    assert sum(profile.stem_scores.values()) == pytest.approx(profile.total)
    assert sum(profile.element_scores.values()) == pytest.approx(profile.total)
    assert sum(profile.ten_god_scores.values()) == pytest.approx(profile.total)
    assert sum(profile.element_percentages.values()) == pytest.approx(100.0)
    assert profile.max_energy == max(profile.element_scores.values())
    assert profile.season == "木"
    assert profile.season_source == "月令寅"
    assert not profile.is_bureau


def test_bureau_chart_follows_the_season():
    profile = calculate_energy_profile(chart("壬申", "壬子", "壬辰", "庚子"))

    assert profile.is_bureau
    assert profile.season == "水"
    assert profile.season_source == "三合水局"
    assert profile.pattern == "水月劫局"
    assert profile.strength.percent == pytest.approx(100.0)
    assert profile.strength.level == "专旺格"
    assert profile.strength.is_strong


def test_clash_and_binding_modifiers():
    profile = calculate_energy_profile(chart("甲子", "己卯", "丙午", "丁酉"))

    assert "[合化失败] 天干 甲+己 -> 合绊" in profile.logs
    # 子午、卯酉两对遥冲，四支皆冲
    assert profile.clash_ne_boost == 60.0
    assert profile.combine_ni_boost == 0.0


def test_all_branches_combined():
    profile = calculate_energy_profile(chart("甲子", "乙丑", "丙寅", "丁亥"))
    assert profile.combine_ni_boost == 60.0


def test_yongshen_lists_do_not_overlap():
    for pillars in (
        ("甲子", "丙寅", "甲午", "庚午"),
        ("癸亥", "甲子", "丙子", "壬辰"),
        ("丙午", "甲午", "丙午", "甲午"),
        ("辛酉", "丁酉", "乙卯", "己卯"),
    ):
        yongshen = calculate_energy_profile(chart(*pillars)).yongshen
        assert yongshen.final is not None
        assert yongshen.favorable_elements
        assert not set(yongshen.favorable_elements) & set(yongshen.unfavorable_elements)


def test_dry_chart_needs_water():
    profile = calculate_energy_profile(chart("丙午", "甲午", "丙午", "甲午"))
    assert profile.climate.is_dry
    assert profile.climate.need_element == "水"
    assert "水" in profile.yongshen.favorable_elements


def test_unknown_symbols_yield_empty_profile():
    profile = calculate_energy_profile(chart("??", "??", "??", "??"))

    assert profile.total == 0
    assert all(v == 0 for v in profile.element_percentages.values())
    assert profile.season is None
    assert profile.pattern == "普通格"
    assert profile.yongshen.final is None


def test_custom_thresholds_change_level():
    pillars = chart("甲子", "丙寅", "甲午", "庚午")
    default = calculate_energy_profile(pillars)
    lenient = calculate_energy_profile(pillars, EnergyThresholds(follow=0.0))
    assert lenient.strength.level == "专旺格"
    assert lenient.strength.percent == pytest.approx(default.strength.percent)


def test_to_dict_rounds_values():
    data = calculate_energy_profile(chart("甲子", "丙寅", "甲午", "庚午")).to_dict(digits=1)
    assert set(data) >= {"scores", "percentages", "strength", "climate", "pattern", "yongshen", "logs"}
    for value in data["percentages"]["elements"].values():
        assert round(value, 1) == value


@pytest.mark.parametrize("percent, inclusive, reason", [
    (72.0, True, "气候优先"),
    (24.0, True, "气候优先"),
    (72.0, False, "依强弱定用"),
    (24.0, False, "依强弱定用"),
    (50.0, False, "气候优先"),
])
def test_climate_priority_band_follows_inclusive_flag(monkeypatch, percent, inclusive, reason):
    calc = EnergyCalculator(EnergyThresholds(inclusive=inclusive))
    monkeypatch.setattr(calc, "climate_god", lambda *args: "癸")
    monkeypatch.setattr(calc, "balance_god", lambda *args: ("甲", [], []))
    level, is_strong = classify_strength(percent, calc.thresholds)
    strength = StrengthResult(level=level, score=percent, percent=percent, is_strong=is_strong)
    climate = ClimateResult(temp_score=0.0, level="中和", is_dry=False, is_wet=False, need_element=None)
    scores = {"木": 100.0, "火": 0.0, "土": 0.0, "金": 0.0, "水": 0.0}

    yongshen = calc.decide_yongshen("甲", "木", "寅", None, strength, {}, scores, 100.0, climate, [])

    assert yongshen.reason == reason
    assert yongshen.final == ("癸" if reason == "气候优先" else "甲")
