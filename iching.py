"""
周易起卦与解卦 - 金钱课起卦、本卦/变卦、动爻取辞规则。

卦码一律为六位二进制字符串，从初爻到上爻 (自下而上)，1 为阳爻，0 为阴爻。
"""
import random
from typing import List, Optional, Sequence

# 八卦: 名称 -> (自下而上三爻, 自然象, 符号)
TRIGRAMS = {
    "乾": ("111", "天", "☰"),
    "兑": ("110", "泽", "☱"),
    "离": ("101", "火", "☲"),
    "震": ("100", "雷", "☳"),
    "巽": ("011", "风", "☴"),
    "坎": ("010", "水", "☵"),
    "艮": ("001", "山", "☶"),
    "坤": ("000", "地", "☷"),
}
TRIGRAM_BY_CODE = {code: name for name, (code, _, _) in TRIGRAMS.items()}

# 文王卦序: (卦名, 上卦, 下卦, 卦意)
KING_WEN = (
    ("乾", "乾", "乾", "刚健中正，自强不息"),
    ("坤", "坤", "坤", "柔顺承载，厚德载物"),
    ("屯", "坎", "震", "万物始生，艰难起步"),
    ("蒙", "艮", "坎", "启蒙未开，求教明理"),
    ("需", "坎", "乾", "守正待时，不可冒进"),
    ("讼", "乾", "坎", "争讼不宜，慎始止争"),
    ("师", "坤", "坎", "兴师用众，以正为本"),
    ("比", "坎", "坤", "亲附比和，择善而从"),
    ("小畜", "巽", "乾", "小有积蓄，密云不雨"),
    ("履", "乾", "兑", "履险知惧，循礼而行"),
    ("泰", "坤", "乾", "天地交泰，通达安和"),
    ("否", "乾", "坤", "天地不交，闭塞守正"),
    ("同人", "乾", "离", "与人和同，同心协力"),
    ("大有", "离", "乾", "大有所获，顺天休命"),
    ("谦", "坤", "艮", "谦逊自守，卑以自牧"),
    ("豫", "震", "坤", "顺时而动，安乐预备"),
    ("随", "兑", "震", "随时应变，择善相随"),
    ("蛊", "艮", "巽", "整治积弊，振民育德"),
    ("临", "坤", "兑", "居上临下，教思无穷"),
    ("观", "巽", "坤", "观察省悟，神道设教"),
    ("噬嗑", "离", "震", "明罚敕法，除去阻碍"),
    ("贲", "艮", "离", "文饰有度，质胜于文"),
    ("剥", "艮", "坤", "剥落衰退，顺时而止"),
    ("复", "坤", "震", "一阳来复，循环往复"),
    ("无妄", "乾", "震", "无妄而行，顺其自然"),
    ("大畜", "艮", "乾", "蓄养德才，厚积薄发"),
    ("颐", "艮", "震", "颐养正道，慎言节饮"),
    ("大过", "兑", "巽", "刚过失衡，独立不惧"),
    ("坎", "坎", "坎", "重险在前，行险不失信"),
    ("离", "离", "离", "附丽光明，柔顺守正"),
    ("咸", "兑", "艮", "感应相交，以虚受人"),
    ("恒", "震", "巽", "恒久守常，立不易方"),
    ("遁", "乾", "艮", "退避守身，远离小人"),
    ("大壮", "震", "乾", "壮盛刚健，非礼弗履"),
    ("晋", "离", "坤", "光明上进，自昭明德"),
    ("明夷", "坤", "离", "光明受伤，韬光养晦"),
    ("家人", "巽", "离", "治家有道，言行有恒"),
    ("睽", "离", "兑", "乖离相异，求同存异"),
    ("蹇", "坎", "艮", "艰难险阻，反身修德"),
    ("解", "震", "坎", "险难解除，赦过宥罪"),
    ("损", "艮", "兑", "减损有度，惩忿窒欲"),
    ("益", "巽", "震", "增益利行，见善则迁"),
    ("夬", "兑", "乾", "决断去邪，施禄及下"),
    ("姤", "乾", "巽", "不期而遇，防微杜渐"),
    ("萃", "兑", "坤", "聚集会合，除戎戒备"),
    ("升", "坤", "巽", "积小成大，顺势上升"),
    ("困", "兑", "坎", "困穷守志，致命遂志"),
    ("井", "坎", "巽", "井养不穷，劳民劝相"),
    ("革", "兑", "离", "变革更新，顺天应人"),
    ("鼎", "离", "巽", "鼎新立制，正位凝命"),
    ("震", "震", "震", "震惊奋发，恐惧修省"),
    ("艮", "艮", "艮", "知止而止，思不出位"),
    ("渐", "巽", "艮", "循序渐进，居贤善俗"),
    ("归妹", "震", "兑", "婚嫁之象，永终知敝"),
    ("丰", "震", "离", "丰盛至极，盛极防衰"),
    ("旅", "离", "艮", "羁旅在外，明慎用刑"),
    ("巽", "巽", "巽", "顺入申命，谦逊随和"),
    ("兑", "兑", "兑", "喜悦和乐，朋友讲习"),
    ("涣", "巽", "坎", "涣散离析，聚心收散"),
    ("节", "坎", "兑", "节制有度，议德行"),
    ("中孚", "巽", "兑", "诚信中正，孚及豚鱼"),
    ("小过", "震", "艮", "小有过越，行过乎恭"),
    ("既济", "坎", "离", "事已成就，思患预防"),
    ("未济", "离", "坎", "事未完成，慎辨物居方"),
)

YAO_POSITION_NAMES = ("初", "二", "三", "四", "五", "上")
LINE_TYPES = {6: "老阴", 7: "少阳", 8: "少阴", 9: "老阳"}
YONG_JIU = "用九：见群龙无首，吉。"
YONG_LIU = "用六：利永贞。"


def _build_hexagrams():
    table = {}
    for number, (short, upper, lower, meaning) in enumerate(KING_WEN, start=1):
        upper_code, upper_nature, _ = TRIGRAMS[upper]
        lower_code, lower_nature, _ = TRIGRAMS[lower]
        if upper == lower:
            full = f"{short}为{upper_nature}"
        else:
            full = f"{upper_nature}{lower_nature}{short}"
        code = lower_code + upper_code
        table[code] = {
            "number": number,
            "name": short,
            "full_name": full,
            "upper": upper,
            "lower": lower,
            "code": code,
            "meaning": meaning,
        }
    return table


HEXAGRAMS = _build_hexagrams()


def find_hexagram(code: str) -> Optional[dict]:
    return HEXAGRAMS.get(code)


def yao_position_name(index: int) -> str:
    """0-5 -> 初 二 三 四 五 上"""
    return YAO_POSITION_NAMES[index] if 0 <= index < 6 else ""


def yao_label(index: int, is_yang: bool) -> str:
    """爻题，如 初九、六二、上六"""
    num = "九" if is_yang else "六"
    if index == 0:
        return f"初{num}"
    if index == 5:
        return f"上{num}"
    return f"{num}{YAO_POSITION_NAMES[index]}"


class ZhouyiCalculator:
    """周易起卦计算器 - 金钱课起卦法"""

    def __init__(self, rng: random.Random = None):
        self.random = rng or random.Random()

    def toss(self) -> int:
        """
        三枚硬币一掷：2为字(背)，3为花(面)
        6=老阴, 7=少阳, 8=少阴, 9=老阳
        """
        return sum(self.random.choice((2, 3)) for _ in range(3))

    def cast(self) -> List[int]:
        """摇六次，自初爻至上爻"""
        return [self.toss() for _ in range(6)]

    def cast_hexagram(self) -> dict:
        return analyze_hexagram(self.cast())


def _validate(lines: Sequence[int]):
    if len(lines) != 6:
        raise ValueError("必须提供6个爻值")
    for value in lines:
        if value not in LINE_TYPES:
            raise ValueError(f"爻值必须为 6/7/8/9，收到 {value!r}")


def main_code(lines: Sequence[int]) -> str:
    return "".join("1" if v in (7, 9) else "0" for v in lines)


def changed_code(lines: Sequence[int]) -> str:
    # 老阴变阳，老阳变阴
    return "".join("1" if v in (6, 7) else "0" for v in lines)


def analyze_hexagram(lines: Sequence[int]) -> dict:
    """
    解析六个爻值 (初爻在前)，得到本卦、变卦、动爻与取辞方案。

    Raises:
        ValueError: 爻数不为6或含有 6/7/8/9 以外的值
    """
    lines = list(lines)
    _validate(lines)

    main = find_hexagram(main_code(lines))
    moving = [i for i, v in enumerate(lines) if v in (6, 9)]
    changed = find_hexagram(changed_code(lines)) if moving else None

    return {
        "lines": lines,
        "line_types": [LINE_TYPES[v] for v in lines],
        "main": main,
        "changed": changed,
        "moving_positions": [i + 1 for i in moving],
        "has_moving_lines": bool(moving),
        "interpretation": build_interpretation(main, changed, moving, lines),
    }


def _guaci(which, hexagram):
    return {"source": which, "kind": "guaci", "position": None,
            "label": f"{hexagram['full_name']}卦辞", "meaning": hexagram["meaning"]}


def _yaoci(which, hexagram, index):
    is_yang = hexagram["code"][index] == "1"
    return {"source": which, "kind": "yaoci", "position": index + 1,
            "label": f"{hexagram['name']}卦{yao_label(index, is_yang)}", "meaning": hexagram["meaning"]}


def build_interpretation(main: dict, changed: Optional[dict], moving: List[int], lines: List[int]) -> dict:
    """
    按动爻数取辞:
    0 本卦卦辞; 1 本卦动爻; 2 一阴一阳取阴爻，否则取上位; 3 本卦与变卦卦辞;
    4 变卦下位静爻; 5 变卦静爻; 6 乾用九、坤用六，余取变卦卦辞
    """
    count = len(moving)
    static = [i for i in range(6) if i not in moving]

    if count == 0:
        return {"title": "本卦卦辞", "rule": 0, "focus": [_guaci("main", main)]}

    if count == 1:
        pos = moving[0]
        return {"title": f"本卦{yao_position_name(pos)}爻爻辞", "rule": 1,
                "focus": [_yaoci("main", main, pos)]}

    if count == 2:
        low, high = sorted(moving)
        low_yin = lines[low] == 6
        high_yin = lines[high] == 6
        if low_yin != high_yin:
            primary, secondary = (low, high) if low_yin else (high, low)
        else:
            primary, secondary = high, low
        return {
            "title": (f"本卦{yao_position_name(low)}爻与{yao_position_name(high)}爻爻辞"
                      f"（以{yao_position_name(primary)}爻为主）"),
            "rule": 2,
            "focus": [_yaoci("main", main, primary), _yaoci("main", main, secondary)],
        }

    if count == 3:
        return {"title": "本卦与变卦卦辞", "rule": 3,
                "focus": [_guaci("main", main), _guaci("changed", changed)]}

    if count == 4:
        pos = min(static)
        return {"title": f"变卦{yao_position_name(pos)}爻爻辞", "rule": 4,
                "focus": [_yaoci("changed", changed, pos)]}

    if count == 5:
        pos = static[0]
        return {"title": f"变卦{yao_position_name(pos)}爻爻辞", "rule": 5,
                "focus": [_yaoci("changed", changed, pos)]}

    if main["name"] == "乾":
        return {"title": "用九", "rule": 6,
                "focus": [{"source": "main", "kind": "yongjiu", "position": None, "label": "用九", "meaning": YONG_JIU}]}
    if main["name"] == "坤":
        return {"title": "用六", "rule": 6,
                "focus": [{"source": "main", "kind": "yongliu", "position": None, "label": "用六", "meaning": YONG_LIU}]}
    return {"title": "变卦卦辞", "rule": 6, "focus": [_guaci("changed", changed)]}
