"""
八字能量引擎 - 藏干能量分布、合冲修正、旺衰、燥湿、格局与用神。

The scorer is total: unknown stems or branches contribute nothing and every
chart yields a profile.
"""
import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional

from bazi_tables import (
    BRANCH_CLASHES,
    BRANCH_SIX_COMBINATIONS,
    BRANCH_THREE_COMBINATIONS,
    BRANCH_THREE_UNIONS,
    ELEMENTS,
    ELEMENT_OF,
    GENERATES,
    RESTRAINS,
    STEMS,
    STEM_COMBINATIONS,
    TEMPERATURE_COEFFICIENTS,
    TEN_GODS,
    TEN_GOD_CATEGORIES,
    TEN_GOD_CATEGORY,
    element_relation,
    hidden_stems_of,
    main_hidden_stem,
    ten_god,
)
from logic import StemBranchChart

logger = logging.getLogger(__name__)

GENERATED_BY = {v: k for k, v in GENERATES.items()}
RESTRAINED_BY = {v: k for k, v in RESTRAINS.items()}

STEM_BASE = (100.0, 100.0, 100.0, 100.0)
BRANCH_BASE = (100.0, 300.0, 100.0, 100.0)  # 月令三倍

# 流通规则: 地支本气对天干的关系 -> (天干系数, 地支系数, 日志标签)
MONTH_PILLAR_FLOW = {
    "同": (1.2, 1.05, "月令主宰-同气"),
    "生": (1.2, 1.0, "月令主宰-得生"),
    "被生": (0.8, 1.1, "月令主宰-泄秀"),
    "克": (0.65, 0.95, "月令主宰-截脚"),
    "被克": (0.8, 0.9, "月令主宰-盖头"),
}
PILLAR_FLOW = {
    "同": (1.3, 1.0, "同气"),
    "生": (1.2, 0.9, "得生"),
    "被生": (0.8, 1.1, "泄秀"),
    "克": (0.7, 0.9, "截脚"),
    "被克": (0.8, 0.8, "盖头"),
}

# 调候用神表 (日主 -> 月支 -> 候选天干，按优先级)
CLIMATE_GODS = {
    "甲": {
        "寅": ("丙", "癸"), "卯": ("丙", "癸"), "辰": ("庚", "丁", "壬"),
        "巳": ("癸", "庚"), "午": ("癸", "庚"), "未": ("癸", "庚"),
        "申": ("庚", "丁", "壬"), "酉": ("庚", "丁", "壬"), "戌": ("庚", "丁", "壬"),
        "亥": ("丙", "庚"), "子": ("丙", "庚"), "丑": ("丙", "庚"),
    },
    "乙": {
        "寅": ("丙", "癸"), "卯": ("丙", "癸"), "辰": ("癸", "丙"),
        "巳": ("癸", "丙"), "午": ("癸", "丙"), "未": ("癸", "丙"),
        "申": ("丙", "癸"), "酉": ("丙", "癸"), "戌": ("癸", "丙"),
        "亥": ("丙", "癸"), "子": ("丙", "癸"), "丑": ("丙", "癸"),
    },
    "丙": {
        "寅": ("壬", "庚"), "卯": ("壬", "己"), "辰": ("壬", "甲"),
        "巳": ("壬", "庚"), "午": ("壬", "庚"), "未": ("壬", "庚"),
        "申": ("壬", "戊"), "酉": ("壬", "戊"), "戌": ("壬", "甲"),
        "亥": ("甲", "戊", "庚"), "子": ("壬", "戊"), "丑": ("壬", "甲"),
    },
    "丁": {
        "寅": ("甲", "庚"), "卯": ("甲", "庚"), "辰": ("甲", "庚"),
        "巳": ("甲", "庚"), "午": ("壬", "庚"), "未": ("壬", "甲"),
        "申": ("甲", "庚", "丙"), "酉": ("甲", "庚", "丙"), "戌": ("甲", "庚", "戊"),
        "亥": ("甲", "庚", "戊"), "子": ("甲", "庚", "戊"), "丑": ("甲", "庚"),
    },
    "戊": {
        "寅": ("丙", "甲", "癸"), "卯": ("丙", "甲", "癸"), "辰": ("丙", "甲", "癸"),
        "巳": ("癸", "丙"), "午": ("癸", "甲", "丙"), "未": ("癸", "丙", "甲"),
        "申": ("丙", "癸", "甲"), "酉": ("丙", "癸"), "戌": ("甲", "丙", "癸"),
        "亥": ("丙", "甲"), "子": ("丙", "甲"), "丑": ("丙", "甲"),
    },
    "己": {
        "寅": ("丙", "癸", "甲"), "卯": ("丙", "癸"), "辰": ("丙", "癸", "甲"),
        "巳": ("癸", "丙"), "午": ("癸", "丙"), "未": ("癸", "丙"),
        "申": ("丙", "癸"), "酉": ("丙", "癸"), "戌": ("丙", "癸", "甲"),
        "亥": ("丙", "甲"), "子": ("丙", "甲"), "丑": ("丙", "甲"),
    },
    "庚": {
        "寅": ("丁", "甲", "丙"), "卯": ("丁", "甲", "丙"), "辰": ("丁", "甲", "壬"),
        "巳": ("壬", "戊", "丙"), "午": ("壬", "癸", "丁"), "未": ("丁", "甲"),
        "申": ("丁", "甲"), "酉": ("丁", "甲"), "戌": ("甲", "壬"),
        "亥": ("丙", "丁", "甲"), "子": ("丙", "丁", "甲"), "丑": ("丙", "丁", "甲"),
    },
    "辛": {
        "寅": ("壬", "甲"), "卯": ("壬", "甲"), "辰": ("壬", "甲"),
        "巳": ("壬", "甲", "癸"), "午": ("壬", "己", "癸"), "未": ("壬", "甲"),
        "申": ("壬", "甲"), "酉": ("壬", "甲"), "戌": ("壬", "甲"),
        "亥": ("丙", "壬", "甲"), "子": ("丙", "壬"), "丑": ("丙", "壬"),
    },
    "壬": {
        "寅": ("戊", "庚", "丙"), "卯": ("戊", "辛", "庚"), "辰": ("甲", "庚"),
        "巳": ("壬", "庚", "戊"), "午": ("壬", "庚", "癸"), "未": ("辛", "甲"),
        "申": ("戊", "丁"), "酉": ("甲", "庚"), "戌": ("甲", "丙"),
        "亥": ("戊", "丙", "庚"), "子": ("戊", "丙"), "丑": ("丙", "丁", "甲"),
    },
    "癸": {
        "寅": ("辛", "丙"), "卯": ("庚", "辛"), "辰": ("丙", "辛", "甲"),
        "巳": ("辛", "庚"), "午": ("庚", "辛"), "未": ("辛", "甲"),
        "申": ("丁", "甲"), "酉": ("辛", "丙"), "戌": ("辛", "甲"),
        "亥": ("庚", "辛", "戊"), "子": ("丙", "辛"), "丑": ("丙", "丁"),
    },
}

# 格局喜忌: 格局 -> 强/弱 -> (喜类, 忌类)
PATTERN_RULES = {
    "正官": {"strong": (("财星", "食伤"), ("印枭",)), "weak": (("印枭", "比劫"), ("财星", "食伤"))},
    "七杀": {"strong": (("食伤", "印枭"), ("财星",)), "weak": (("印枭", "比劫"), ("财星", "食伤"))},
    "正印": {"strong": (("财星", "食伤"), ("印枭", "比劫")), "weak": (("官杀", "比劫"), ("财星",))},
    "偏印": {"strong": (("财星", "食伤"), ("印枭",)), "weak": (("比劫", "官杀"), ("食伤",))},
    "食神": {"strong": (("财星", "官杀"), ("印枭",)), "weak": (("印枭", "比劫"), ("财星", "食伤"))},
    "伤官": {"strong": (("财星", "印枭"), ("官杀",)), "weak": (("印枭", "比劫"), ("官杀", "财星"))},
    "正财": {"strong": (("食伤", "官杀"), ("比劫",)), "weak": (("比劫", "印枭"), ("食伤", "财星"))},
    "偏财": {"strong": (("食伤", "官杀"), ("比劫",)), "weak": (("比劫", "印枭"), ("食伤", "财星"))},
    "建禄": {"strong": (("官杀", "财星", "食伤"), ("印枭",)), "weak": (("印枭", "比劫"), ("官杀", "食伤"))},
    "月劫": {"strong": (("官杀", "财星", "食伤"), ("印枭",)), "weak": (("印枭", "比劫"), ("官杀", "财星"))},
}

# 十神本性排序，数字越小越纯
GOD_NATURE_RANK = {
    "正官": 1, "正印": 1, "食神": 1, "正财": 1,
    "比肩": 2, "偏财": 2,
    "七杀": 3, "伤官": 3, "偏印": 3, "劫财": 3,
}


@dataclass(frozen=True)
class EnergyThresholds:
    """
    旺衰与燥湿的分界值。inclusive 为 True 时，恰好落在分界上的值归入上一档。
    """
    follow: float = 90.0
    strong: float = 72.0
    balanced: float = 50.0
    weak: float = 24.0
    dry: float = 400.0
    slightly_dry: float = 200.0
    slightly_wet: float = -200.0
    wet: float = -400.0
    climate_sufficient_pct: float = 25.0
    inclusive: bool = True

    def at_least(self, value, threshold):
        return value >= threshold if self.inclusive else value > threshold

    def at_most(self, value, threshold):
        return value <= threshold if self.inclusive else value < threshold


DEFAULT_THRESHOLDS = EnergyThresholds()


@dataclass
class StrengthResult:
    level: str
    score: float
    percent: float
    is_strong: bool


@dataclass
class ClimateResult:
    temp_score: float
    level: str
    is_dry: bool
    is_wet: bool
    need_element: Optional[str]


@dataclass
class YongShen:
    climate: Optional[str]
    balance: Optional[str]
    final: Optional[str]
    reason: str
    favorable_elements: List[str] = field(default_factory=list)
    unfavorable_elements: List[str] = field(default_factory=list)


@dataclass
class EnergyProfile:
    stem_scores: Dict[str, float]
    element_scores: Dict[str, float]
    ten_god_scores: Dict[str, float]
    category_scores: Dict[str, float]
    total: float
    strength: StrengthResult
    climate: ClimateResult
    pattern: str
    pattern_base: str
    yongshen: YongShen
    season: Optional[str]
    season_source: str
    is_bureau: bool
    month_main_stem: Optional[str]
    combine_ni_boost: float
    clash_ne_boost: float
    logs: List[str] = field(default_factory=list)

    def _pct(self, scores):
        if self.total <= 0:
            return {k: 0.0 for k in scores}
        return {k: v / self.total * 100 for k, v in scores.items()}

    @property
    def stem_percentages(self):
        return self._pct(self.stem_scores)

    @property
    def element_percentages(self):
        return self._pct(self.element_scores)

    @property
    def ten_god_percentages(self):
        return self._pct(self.ten_god_scores)

    @property
    def category_percentages(self):
        return self._pct(self.category_scores)

    @property
    def max_energy(self):
        return max(self.element_scores.values()) if self.element_scores else 0.0

    def to_dict(self, digits=2):
        def rounded(d):
            return {k: round(v, digits) for k, v in d.items()}

        return {
            "scores": {
                "stems": rounded(self.stem_scores),
                "elements": rounded(self.element_scores),
                "ten_gods": rounded(self.ten_god_scores),
                "categories": rounded(self.category_scores),
            },
            "percentages": {
                "stems": rounded(self.stem_percentages),
                "elements": rounded(self.element_percentages),
                "ten_gods": rounded(self.ten_god_percentages),
                "categories": rounded(self.category_percentages),
            },
            "total": round(self.total, digits),
            "max_energy": round(self.max_energy, digits),
            "strength": {
                "level": self.strength.level,
                "score": round(self.strength.score, digits),
                "percent": round(self.strength.percent, digits),
                "is_strong": self.strength.is_strong,
            },
            "climate": {
                "temp_score": round(self.climate.temp_score, digits),
                "level": self.climate.level,
                "is_dry": self.climate.is_dry,
                "is_wet": self.climate.is_wet,
                "need_element": self.climate.need_element,
            },
            "pattern": self.pattern,
            "pattern_base": self.pattern_base,
            "yongshen": {
                "climate": self.yongshen.climate,
                "balance": self.yongshen.balance,
                "final": self.yongshen.final,
                "reason": self.yongshen.reason,
                "favorable_elements": self.yongshen.favorable_elements,
                "unfavorable_elements": self.yongshen.unfavorable_elements,
            },
            "season": self.season,
            "season_source": self.season_source,
            "is_bureau": self.is_bureau,
            "month_main_stem": self.month_main_stem,
            "interaction_boosts": {
                "combine_ni": self.combine_ni_boost,
                "clash_ne": self.clash_ne_boost,
            },
            "logs": list(self.logs),
        }


def _combined_element(table, a, b):
    pair = {a, b}
    for members, element in table:
        if pair == members:
            return element
    return None


def category_element(day_master_element, category):
    """十神大类对应的五行"""
    if day_master_element is None:
        return None
    return {
        "比劫": day_master_element,
        "食伤": GENERATES[day_master_element],
        "财星": RESTRAINS[day_master_element],
        "官杀": RESTRAINED_BY[day_master_element],
        "印枭": GENERATED_BY[day_master_element],
    }.get(category)


def classify_strength(percent, thresholds=DEFAULT_THRESHOLDS):
    """同党占比 -> (等级, 是否偏强)"""
    if thresholds.at_least(percent, thresholds.follow):
        return "专旺格", True
    if thresholds.at_least(percent, thresholds.strong):
        return "身强", True
    if thresholds.at_least(percent, thresholds.balanced):
        return "中和", True
    if thresholds.at_least(percent, thresholds.weak):
        return "身弱", False
    return "身弱格", False


def classify_climate(temp_score, thresholds=DEFAULT_THRESHOLDS):
    """气候指数 -> (等级, 燥, 湿, 所需五行)"""
    if thresholds.at_least(temp_score, thresholds.dry):
        return "燥", True, False, "水"
    if thresholds.at_least(temp_score, thresholds.slightly_dry):
        return "偏燥", True, False, "水"
    if thresholds.at_most(temp_score, thresholds.wet):
        return "湿", False, True, "火"
    if thresholds.at_most(temp_score, thresholds.slightly_wet):
        return "偏湿", False, True, "火"
    return "中和", False, False, None


class EnergyCalculator:
    """八字能量计算器 - 物理引擎式的能量分布与用神裁定"""

    def __init__(self, thresholds: EnergyThresholds = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    # ================== 1. 真神与合局 ==================
    def detect_season(self, branches, logs):
        present = set(branches)
        for groups, kind in ((BRANCH_THREE_UNIONS, "三会"), (BRANCH_THREE_COMBINATIONS, "三合")):
            for members, element in groups:
                if all(m in present for m in members):
                    source = f"{kind}{element}局"
                    logs.append(f"[{kind}局] 检测到{source}")
                    return element, source, frozenset(members), True

        month_main = main_hidden_stem(branches[1])
        if month_main:
            return ELEMENT_OF[month_main], f"月令{branches[1]}", frozenset(), False
        return None, "月令本气", frozenset(), False

    # ================== 2. 合冲修正 ==================
    def binding_modifiers(self, stems, branches, season, month_main, group, logs):
        stem_mods = [1.0] * 4
        branch_mods = [1.0] * 4
        bound = [False] * 4

        for i in range(3):
            target = _combined_element(STEM_COMBINATIONS, stems[i], stems[i + 1])
            if not target:
                continue
            if target == season:
                logs.append(f"[合化成功] 天干 {stems[i]}+{stems[i + 1]} -> 化为{target}")
            else:
                stem_mods[i] *= 0.7
                stem_mods[i + 1] *= 0.7
                logs.append(f"[合化失败] 天干 {stems[i]}+{stems[i + 1]} -> 合绊")

        combined = set()
        ni_sum = 0.0
        month_main_wx = ELEMENT_OF.get(month_main)
        for i in range(3):
            target = _combined_element(BRANCH_SIX_COMBINATIONS, branches[i], branches[i + 1])
            if not target:
                continue
            combined.update((i, i + 1))
            ni_sum += 10.0
            if target == season or target == month_main_wx:
                logs.append(f"[合化成功] 地支 {branches[i]}+{branches[i + 1]} -> 化为{target}")
            else:
                for k in (i, i + 1):
                    if not bound[k]:
                        branch_mods[k] *= 0.7
                        bound[k] = True
                logs.append(f"[合化失败] 地支 {branches[i]}+{branches[i + 1]} -> 合绊")

        if len(combined) == 4:
            combine_ni = 60.0
            logs.append("[地支全合] 触发极度内敛效应")
        else:
            combine_ni = ni_sum

        clashed = set()
        ne_sum = 0.0
        for i, j in combinations(range(4), 2):
            if {branches[i], branches[j]} not in BRANCH_CLASHES:
                continue
            clashed.update((i, j))
            if branches[i] in group or branches[j] in group:
                continue
            if j - i == 1:
                factor, boost = 0.6, 10.0
                logs.append(f"[相邻相冲] {branches[i]}与{branches[j]}相邻，能量*0.6")
            else:
                factor, boost = 0.85, 5.0
                logs.append(f"[不相邻冲] {branches[i]}与{branches[j]}遥冲，能量*0.85")
            branch_mods[i] *= factor
            branch_mods[j] *= factor
            ne_sum += boost

        if len(clashed) == 4:
            clash_ne = 60.0
            logs.append("[地支全冲] 触发极度动荡效应")
        else:
            clash_ne = ne_sum

        return stem_mods, branch_mods, combine_ni, clash_ne

    # ================== 3. 能量计算 ==================
    def raw_scores(self, stems, branches, season, group, stem_mods, branch_mods, logs):
        stem_scores = [
            STEM_BASE[i] * stem_mods[i] if stems[i] in STEMS else 0.0
            for i in range(4)
        ]

        hidden_scores = []
        for i, branch in enumerate(branches):
            if branch in group and season:
                # 成局地支变性为该五行阴阳各半
                breakdown = tuple((s, 0.5) for s in STEMS if ELEMENT_OF[s] == season)
                logs.append(f"[成局变性] {branch} 卷入{season}局")
            else:
                breakdown = hidden_stems_of(branch)
            hidden_scores.append({s: BRANCH_BASE[i] * r * branch_mods[i] for s, r in breakdown})

        # 季节旺相休囚
        if season:
            season_mult = {
                season: 1.5,
                GENERATES[season]: 1.2,
                GENERATED_BY[season]: 0.9,
                RESTRAINS[season]: 0.7,
                RESTRAINED_BY[season]: 0.8,
            }
            for i in range(4):
                stem_scores[i] *= season_mult.get(ELEMENT_OF.get(stems[i]), 1.0)
                for s in hidden_scores[i]:
                    hidden_scores[i][s] *= season_mult[ELEMENT_OF[s]]

        # 通根
        for i, stem in enumerate(stems):
            if stem not in STEMS:
                continue
            if not any(stem in d for d in hidden_scores):
                stem_scores[i] *= 0.6
                logs.append(f"[虚浮无根] 天干{stem} 能量减损")

        # 干支流通，月柱单独成规
        for i in range(4):
            if not hidden_scores[i] or stems[i] not in STEMS:
                continue
            branch_main = max(hidden_scores[i], key=hidden_scores[i].get)
            relation = element_relation(ELEMENT_OF[branch_main], ELEMENT_OF[stems[i]])
            rules = MONTH_PILLAR_FLOW if i == 1 else PILLAR_FLOW
            stem_factor, branch_factor, tag = rules[relation]
            stem_scores[i] *= stem_factor
            if branch_factor != 1.0:
                for s in hidden_scores[i]:
                    hidden_scores[i][s] *= branch_factor
            logs.append(f"[{tag}] {stems[i]}{branches[i]} 天干*{stem_factor} 地支*{branch_factor}")

        return stem_scores, hidden_scores

    # ================== 4. 格局 ==================
    def find_pattern(self, day_master, stems, month_branch, season, is_bureau):
        dm_wx = ELEMENT_OF.get(day_master)
        if day_master not in STEMS:
            return "普通格", "未知"

        if is_bureau:
            raw = {"同": "劫财", "生": "伤官", "被生": "偏印", "克": "偏财", "被克": "七杀"}[
                element_relation(dm_wx, season)
            ]
            base = "月劫" if raw == "劫财" else raw
            return f"{season}{base}局", base

        month_hidden = sorted(hidden_stems_of(month_branch), key=lambda item: -item[1])
        for stem, _ in month_hidden:
            if stem in stems:
                god = ten_god(day_master, stem)
                if TEN_GOD_CATEGORY.get(god) != "比劫":
                    return f"{god}格", god

        main_qi = main_hidden_stem(month_branch)
        if main_qi is None:
            return "普通格", "未知"
        main_god = ten_god(day_master, main_qi)
        if main_god == "比肩":
            return "建禄格", "建禄"
        if main_god == "劫财":
            return "月劫格", "月劫"
        return f"{main_god}格(月令本气)", main_god

    # ================== 5. 用神 ==================
    def climate_god(self, day_master, month_branch, final_scores, logs):
        candidates = CLIMATE_GODS.get(day_master, {}).get(month_branch, ())
        if candidates:
            existing = [s for s in candidates if final_scores.get(s, 0) > 0]
            if existing:
                god = max(existing, key=lambda s: final_scores[s])
                logs.append(f"[调候用神] {day_master}生于{month_branch}月，取{god}（盘中存在）")
            else:
                god = candidates[0]
                logs.append(f"[调候用神] {day_master}生于{month_branch}月，取{god}（盘中缺失）")
            return god

        if month_branch in ("巳", "午", "未"):
            god = "壬"
        elif month_branch in ("亥", "子", "丑"):
            god = "丙"
        else:
            god = "甲"
        logs.append(f"[调候用神] 季节兜底：{god}")
        return god

    def balance_god(self, day_master, pattern, is_strong, final_scores, logs):
        base_key = next((k for k in PATTERN_RULES if k in pattern), "正官")
        preferred, taboo = PATTERN_RULES[base_key]["strong" if is_strong else "weak"]

        raw_cats = ("官杀", "食伤", "财星") if is_strong else ("印枭", "比劫")
        balance_cats = [c for c in raw_cats if c not in taboo] or list(preferred)

        pool = []
        for idx, stem in enumerate(STEMS):
            if final_scores[stem] <= 0:
                continue
            god = ten_god(day_master, stem)
            cat = TEN_GOD_CATEGORY.get(god)
            if cat in balance_cats or cat in preferred:
                pool.append((0 if cat in preferred else 1, GOD_NATURE_RANK.get(god, 4), idx, stem, god))

        if not pool:
            return None, preferred, taboo
        pool.sort()
        _, _, _, stem, god = pool[0]
        logs.append(f"[扶抑用神] 强弱喜忌+格局喜忌综合选优 | {god}{stem}")
        return stem, preferred, taboo

    # ================== 汇总 ==================
    def calculate(self, chart: StemBranchChart) -> EnergyProfile:
        th = self.thresholds
        logs = []
        stems = chart.stems
        branches = chart.branches
        day_master = chart.day_master
        dm_wx = ELEMENT_OF.get(day_master) if day_master in STEMS else None
        month_branch = chart.month_branch

        season, season_source, group, is_bureau = self.detect_season(branches, logs)
        month_main = main_hidden_stem(month_branch)

        stem_mods, branch_mods, combine_ni, clash_ne = self.binding_modifiers(
            stems, branches, season, month_main, group, logs
        )
        stem_scores, hidden_scores = self.raw_scores(
            stems, branches, season, group, stem_mods, branch_mods, logs
        )

        final_scores = {s: 0.0 for s in STEMS}
        for i, stem in enumerate(stems):
            if stem in final_scores:
                final_scores[stem] += stem_scores[i]
        for scores in hidden_scores:
            for stem, value in scores.items():
                bureau_element = is_bureau and ELEMENT_OF[stem] == season
                # 藏干未透且非成局五行，打八折
                final_scores[stem] += value if (stem in stems or bureau_element) else value * 0.8

        total = sum(final_scores.values())
        temp_score = sum(final_scores[s] * TEMPERATURE_COEFFICIENTS[s] for s in STEMS)

        element_scores = {wx: 0.0 for wx in ELEMENTS}
        ten_god_scores = {g: 0.0 for g in TEN_GODS}
        category_scores = {c: 0.0 for c in TEN_GOD_CATEGORIES}
        for stem, value in final_scores.items():
            element_scores[ELEMENT_OF[stem]] += value
            god = ten_god(day_master, stem)
            if god:
                ten_god_scores[god] += value
                category_scores[TEN_GOD_CATEGORY[god]] += value

        peer_score = category_scores["比劫"] + category_scores["印枭"]
        peer_pct = peer_score / total * 100 if total > 0 else 0.0
        level, is_strong = classify_strength(peer_pct, th)
        strength = StrengthResult(level=level, score=peer_score, percent=peer_pct, is_strong=is_strong)

        climate_level, is_dry, is_wet, need = classify_climate(temp_score, th)
        logs.append(f"[气候判定] {climate_level}（气候指数{temp_score:.0f}）")
        climate = ClimateResult(
            temp_score=temp_score, level=climate_level, is_dry=is_dry, is_wet=is_wet, need_element=need
        )

        pattern, pattern_base = self.find_pattern(day_master, stems, month_branch, season, is_bureau)
        yongshen = self.decide_yongshen(
            day_master, dm_wx, month_branch, pattern, strength, final_scores, element_scores, total, climate, logs
        )

        profile = EnergyProfile(
            stem_scores=final_scores,
            element_scores=element_scores,
            ten_god_scores=ten_god_scores,
            category_scores=category_scores,
            total=total,
            strength=strength,
            climate=climate,
            pattern=pattern,
            pattern_base=pattern_base,
            yongshen=yongshen,
            season=season,
            season_source=season_source,
            is_bureau=is_bureau,
            month_main_stem=month_main,
            combine_ni_boost=combine_ni,
            clash_ne_boost=clash_ne,
            logs=logs,
        )
        logger.debug("energy %s -> %s %s %s", chart, level, pattern, yongshen.final)
        return profile

    def decide_yongshen(self, day_master, dm_wx, month_branch, pattern, strength,
                        final_scores, element_scores, total, climate, logs) -> YongShen:
        th = self.thresholds
        if dm_wx is None:
            return YongShen(climate=None, balance=None, final=None, reason="日主未知")

        climate_god = self.climate_god(day_master, month_branch, final_scores, logs)
        balance_god, preferred, taboo = self.balance_god(
            day_master, pattern, strength.is_strong, final_scores, logs
        )

        pct = strength.percent
        if th.at_least(pct, th.weak) and th.at_most(pct, th.strong) and climate_god:
            climate_pct = element_scores[ELEMENT_OF[climate_god]] / total * 100 if total > 0 else 0.0
            if climate_pct > th.climate_sufficient_pct:
                final = balance_god or climate_god
                reason = "调候已足转向扶抑"
            else:
                final = climate_god
                reason = "气候优先"
        else:
            final = balance_god or climate_god
            reason = "依强弱定用"

        favorable = []
        for wx in [ELEMENT_OF.get(final), climate.need_element] + [category_element(dm_wx, c) for c in preferred]:
            if wx and wx not in favorable:
                favorable.append(wx)
        unfavorable = []
        for c in taboo:
            wx = category_element(dm_wx, c)
            if wx and wx not in favorable and wx not in unfavorable:
                unfavorable.append(wx)

        return YongShen(
            climate=climate_god,
            balance=balance_god,
            final=final,
            reason=reason,
            favorable_elements=favorable,
            unfavorable_elements=unfavorable,
        )


_ENERGY_CALC = EnergyCalculator()


def calculate_energy_profile(chart: StemBranchChart, thresholds: EnergyThresholds = None) -> EnergyProfile:
    """Score the energy distribution of a chart."""
    if thresholds is None:
        return _ENERGY_CALC.calculate(chart)
    return EnergyCalculator(thresholds).calculate(chart)
