"""
Fortune Teller Logic Module.
Builds the four-pillar chart (StemBranchChart) and its derived chart report:
ten gods, hidden stems, twelve life stages, void branches, nayin, 神煞 and luck cycles.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from lunar_python import Solar

from bazi_tables import (
    BRANCHES,
    DAY_PILLAR_SHEN_SHA,
    DAY_STEM_SHEN_SHA,
    ELEMENT_OF,
    HEAVENLY_JOY,
    HEAVENLY_VIRTUE,
    LIFE_STAGES,
    LIFE_STAGE_START,
    MONTHLY_VIRTUE,
    NAYIN,
    NOBLEMAN,
    PILLAR_KEYS,
    SAN_HE_SHEN_SHA,
    STEM_COMBINATIONS,
    STEMS,
    hidden_stems_of,
    polarity_of,
    ten_god,
)

logger = logging.getLogger(__name__)

# 北京时间基准经度 (东八区中央经线为120°E)
BEIJING_LONGITUDE = 120.0


@dataclass(frozen=True)
class Pillar:
    """一柱: 天干 + 地支"""
    stem: str
    branch: str

    @property
    def gan_zhi(self) -> str:
        return f"{self.stem}{self.branch}"


@dataclass(frozen=True)
class StemBranchChart:
    """
    四柱八字 (年、月、日、时)。
    八个槽位索引: 0-3 为年月日时天干，4-7 为年月日时地支。
    """
    year: Pillar
    month: Pillar
    day: Pillar
    hour: Pillar

    @classmethod
    def from_pillars(cls, pillars: Sequence[str]) -> "StemBranchChart":
        """从 ["甲子", "丙寅", "壬辰", "庚午"] 直接构造"""
        if len(pillars) != 4:
            raise ValueError("需要年月日时四柱")
        parts = []
        for gz in pillars:
            gz = (gz or "").strip()
            stem = gz[0] if len(gz) > 0 else ""
            branch = gz[1] if len(gz) > 1 else ""
            parts.append(Pillar(stem, branch))
        return cls(*parts)

    @classmethod
    def from_symbols(cls, stems: Sequence[str], branches: Sequence[str]) -> "StemBranchChart":
        return cls(*(Pillar(s, b) for s, b in zip(stems, branches)))

    @property
    def pillars(self):
        return (self.year, self.month, self.day, self.hour)

    @property
    def stems(self) -> List[str]:
        return [p.stem for p in self.pillars]

    @property
    def branches(self) -> List[str]:
        return [p.branch for p in self.pillars]

    @property
    def slots(self) -> List[str]:
        return self.stems + self.branches

    @property
    def day_master(self) -> str:
        return self.day.stem

    @property
    def month_branch(self) -> str:
        return self.month.branch

    def is_valid(self) -> bool:
        return all(s in STEMS for s in self.stems) and all(b in BRANCHES for b in self.branches)

    def __str__(self):
        return "  ".join(
            f"{label}柱: {p.gan_zhi}" for label, p in zip(("年", "月", "日", "时"), self.pillars)
        )


def calculate_true_solar_time(year: int, month: int, day: int, hour: int, minute: int, longitude: float) -> tuple:
    """
    Calculate true solar time based on birthplace longitude.
    """
    longitude_diff = longitude - BEIJING_LONGITUDE
    time_diff_minutes = longitude_diff * 4
    original_dt = datetime(year, month, day, hour, minute)
    adjusted_dt = original_dt + timedelta(minutes=time_diff_minutes)
    return adjusted_dt, time_diff_minutes


def calculate_chart(year: int, month: int, day: int, hour: int, minute: int = 0, longitude: float = None) -> tuple:
    """
    Calculate the four pillars from a solar birth timestamp.

    The longitude correction only moves the hour pillar; year, month and day
    pillars are taken from the clock time as entered.

    Returns:
        tuple: (chart, time_info)
    """
    solar = Solar.fromYmdHms(year, month, day, hour, minute, 0)
    eight_char = solar.getLunar().getEightChar()
    hour_pillar = eight_char.getTime()
    time_info = None

    if longitude is not None:
        adjusted_dt, time_diff = calculate_true_solar_time(year, month, day, hour, minute, longitude)
        adjusted = Solar.fromYmdHms(
            adjusted_dt.year, adjusted_dt.month, adjusted_dt.day,
            adjusted_dt.hour, adjusted_dt.minute, 0,
        )
        hour_pillar = adjusted.getLunar().getEightChar().getTime()
        if time_diff >= 0:
            time_info = f"真太阳时校正: +{time_diff:.1f}分钟"
        else:
            time_info = f"真太阳时校正: {time_diff:.1f}分钟"

    chart = StemBranchChart.from_pillars([
        eight_char.getYear(),
        eight_char.getMonth(),
        eight_char.getDay(),
        hour_pillar,
    ])
    logger.debug("chart %s %s", chart, time_info or "")
    return chart, time_info


class BaziAuxiliaryCalculator:
    """八字辅助计算器 - 十二长生、空亡、纳音、神煞"""

    def get_stage(self, stem, branch):
        """天干在某地支的长生状态，未知字符返回空串"""
        if stem not in LIFE_STAGE_START or branch not in BRANCHES:
            return ""
        start_idx = LIFE_STAGE_START[stem]
        branch_idx = BRANCHES.index(branch)
        if polarity_of(stem) == "阳":
            # 阳干顺行
            diff = (branch_idx - start_idx) % 12
        else:
            # 阴干逆行
            diff = (start_idx - branch_idx) % 12
        return LIFE_STAGES[diff]

    def get_12_stages(self, day_master, branches):
        """
        计算日主在四柱地支的长生状态
        :param branches: [年支, 月支, 日支, 时支]
        """
        results = [self.get_stage(day_master, b) for b in branches]
        return {
            "year_stage": results[0],
            "month_stage": results[1],
            "day_stage": results[2],  # 自坐
            "hour_stage": results[3]
        }

    def get_kong_wang(self, stem, branch):
        """
        计算单柱空亡
        口诀：甲子旬中戌亥空...
        """
        if stem not in STEMS or branch not in BRANCHES:
            return []
        diff = (BRANCHES.index(branch) - STEMS.index(stem)) % 12
        # 空亡是该旬最后两个
        return [BRANCHES[(diff - 2) % 12], BRANCHES[(diff - 1) % 12]]

    def get_nayin(self, gan_zhi):
        return NAYIN.get(gan_zhi, "")

    def get_shen_sha(self, location, stem, branch, chart):
        """
        计算单柱神煞
        :param location: year / month / day / hour，日柱专有神煞只在 day 检查
        :return: 神煞名列表，按检查顺序去重
        """
        found = []

        def add(name):
            if name not in found:
                found.append(name)

        if location == "day":
            for name, pillars in DAY_PILLAR_SHEN_SHA:
                if stem + branch in pillars:
                    add(name)

        # 天乙贵人以日干、年干查
        for base in (chart.day.stem, chart.year.stem):
            if branch in NOBLEMAN.get(base, ()):
                add("天乙贵人")
        for name, table in DAY_STEM_SHEN_SHA:
            if table.get(chart.day.stem) == branch:
                add(name)

        virtue = HEAVENLY_VIRTUE.get(chart.month.branch)
        monthly = MONTHLY_VIRTUE.get(chart.month.branch)
        if virtue and virtue in (stem, branch):
            add("天德贵人")
        if monthly and monthly == stem:
            add("月德贵人")
        if virtue and _combine_partner(virtue) == stem:
            add("天德合")
        if monthly and _combine_partner(monthly) == stem:
            add("月德合")

        # 桃花、驿马等以年支、日支所在三合局查
        bases = [b for b in dict.fromkeys((chart.year.branch, chart.day.branch)) if b]
        for base in bases:
            for group, stars in SAN_HE_SHEN_SHA:
                if base not in group:
                    continue
                for name, target in stars:
                    if target == branch:
                        add(name)
        if any(HEAVENLY_JOY.get(b) == branch for b in bases):
            add("天喜")
        return found


def _combine_partner(stem):
    """天干五合的另一方，地支或未知字符返回 None"""
    for pair, _ in STEM_COMBINATIONS:
        if stem in pair:
            return next(iter(pair - {stem}))
    return None


_AUX_CALC = BaziAuxiliaryCalculator()


def build_chart_report(chart: StemBranchChart) -> dict:
    """
    Build a plain dict describing the chart: per-pillar ten gods, hidden stems,
    life stages, nayin, void branches and 神煞.
    """
    day_master = chart.day_master
    pillars = []
    for key, pillar in zip(PILLAR_KEYS, chart.pillars):
        if key == "day":
            stem_god = "日主"
        else:
            stem_god = ten_god(day_master, pillar.stem) or ""
        hidden = [
            {"stem": s, "weight": w, "ten_god": ten_god(day_master, s) or ""}
            for s, w in hidden_stems_of(pillar.branch)
        ]
        pillars.append({
            "key": key,
            "stem": pillar.stem,
            "branch": pillar.branch,
            "stem_element": ELEMENT_OF.get(pillar.stem, ""),
            "branch_element": ELEMENT_OF.get(pillar.branch, ""),
            "stem_ten_god": stem_god,
            "hidden_stems": hidden,
            "stage": _AUX_CALC.get_stage(day_master, pillar.branch),
            "self_seat": _AUX_CALC.get_stage(pillar.stem, pillar.branch),
            "nayin": _AUX_CALC.get_nayin(pillar.gan_zhi),
            "kong_wang": _AUX_CALC.get_kong_wang(pillar.stem, pillar.branch),
            "shen_sha": _AUX_CALC.get_shen_sha(key, pillar.stem, pillar.branch, chart),
        })

    return {
        "pillars": pillars,
        "day_master": day_master,
        "day_master_element": ELEMENT_OF.get(day_master, ""),
        "day_master_polarity": polarity_of(day_master) or "",
        "twelve_stages": _AUX_CALC.get_12_stages(day_master, chart.branches),
        "kong_wang": _AUX_CALC.get_kong_wang(chart.day.stem, chart.day.branch),
    }


def calculate_luck_cycles(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    gender: str,
    longitude: Optional[float] = None
) -> dict:
    """
    Calculate DaYun / LiuNian / LiuYue cycles using lunar-python.
    Library failures produce empty lists.
    """
    result = {"da_yun": [], "liu_nian": [], "liu_yue": [], "start_info": {}}
    try:
        if longitude is not None:
            adjusted_dt, _ = calculate_true_solar_time(year, month, day, hour, minute, longitude)
            year, month, day, hour, minute = (
                adjusted_dt.year,
                adjusted_dt.month,
                adjusted_dt.day,
                adjusted_dt.hour,
                adjusted_dt.minute,
            )
        solar = Solar.fromYmdHms(year, month, day, hour, minute, 0)
        yun = solar.getLunar().getEightChar().getYun(1 if gender == "男" else 0)
    except Exception as e:
        logger.warning("luck cycle calculation failed: %s", e)
        return result

    result["start_info"] = {
        "year": yun.getStartYear(),
        "month": yun.getStartMonth(),
        "day": yun.getStartDay(),
    }

    now_year = datetime.now().year
    current_ln = None
    for dy in yun.getDaYun():
        gan_zhi = dy.getGanZhi()
        if not gan_zhi:
            # 起运前的小运段
            continue
        result["da_yun"].append({
            "gan_zhi": gan_zhi,
            "start_year": dy.getStartYear(),
            "end_year": dy.getEndYear(),
            "start_age": dy.getStartAge(),
            "end_age": dy.getEndAge(),
        })
        for ln in dy.getLiuNian():
            ln_year = ln.getYear()
            if ln_year == now_year:
                current_ln = ln
            if ln_year >= now_year:
                result["liu_nian"].append({
                    "year": ln_year,
                    "gan_zhi": ln.getGanZhi(),
                    "age": ln.getAge(),
                })

    result["liu_nian"] = sorted(result["liu_nian"], key=lambda item: item["year"])[:10]

    if current_ln is not None:
        for ly in current_ln.getLiuYue():
            result["liu_yue"].append({
                "month": ly.getMonthInChinese(),
                "gan_zhi": ly.getGanZhi(),
            })

    return result
