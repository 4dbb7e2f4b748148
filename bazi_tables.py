"""
八字静态数据表 - 天干地支、五行生克、藏干、十神、合冲刑害、长生、纳音。
所有表在导入时构建一次，之后只读。
"""
from types import MappingProxyType

STEMS = ("甲", "乙", "丙", "丁", "戊", "己", "庚", "辛", "壬", "癸")
BRANCHES = ("子", "丑", "寅", "卯", "辰", "巳", "午", "未", "申", "酉", "戌", "亥")
ELEMENTS = ("木", "火", "土", "金", "水")
PILLAR_KEYS = ("year", "month", "day", "hour")
PILLAR_LABELS = ("年", "月", "日", "时")

ELEMENT_OF = MappingProxyType({
    "甲": "木", "乙": "木", "丙": "火", "丁": "火", "戊": "土",
    "己": "土", "庚": "金", "辛": "金", "壬": "水", "癸": "水",
    "子": "水", "丑": "土", "寅": "木", "卯": "木", "辰": "土", "巳": "火",
    "午": "火", "未": "土", "申": "金", "酉": "金", "戌": "土", "亥": "水",
})

# 阳干阳支取偶数位
POLARITY_OF = MappingProxyType({
    **{s: ("阳" if i % 2 == 0 else "阴") for i, s in enumerate(STEMS)},
    **{b: ("阳" if i % 2 == 0 else "阴") for i, b in enumerate(BRANCHES)},
})

# 五行相生 / 相克
GENERATES = MappingProxyType({"木": "火", "火": "土", "土": "金", "金": "水", "水": "木"})
RESTRAINS = MappingProxyType({"木": "土", "火": "金", "土": "水", "金": "木", "水": "火"})

# 藏干及权重 (本气在前，每支合计 1.0)
HIDDEN_STEMS = MappingProxyType({
    "子": (("癸", 1.0),),
    "丑": (("己", 0.7), ("癸", 0.2), ("辛", 0.1)),
    "寅": (("甲", 0.7), ("丙", 0.2), ("戊", 0.1)),
    "卯": (("乙", 1.0),),
    "辰": (("戊", 0.7), ("乙", 0.2), ("癸", 0.1)),
    "巳": (("丙", 0.7), ("戊", 0.2), ("庚", 0.1)),
    "午": (("丁", 0.7), ("己", 0.3)),
    "未": (("己", 0.7), ("丁", 0.2), ("乙", 0.1)),
    "申": (("庚", 0.7), ("壬", 0.2), ("戊", 0.1)),
    "酉": (("辛", 1.0),),
    "戌": (("戊", 0.7), ("辛", 0.2), ("丁", 0.1)),
    "亥": (("壬", 0.8), ("甲", 0.2)),
})

TEN_GODS = ("比肩", "劫财", "食神", "伤官", "偏财", "正财", "七杀", "正官", "偏印", "正印")
TEN_GOD_CATEGORIES = ("比劫", "食伤", "财星", "官杀", "印枭")
TEN_GOD_CATEGORY = MappingProxyType({
    "比肩": "比劫", "劫财": "比劫",
    "食神": "食伤", "伤官": "食伤",
    "偏财": "财星", "正财": "财星",
    "七杀": "官杀", "正官": "官杀",
    "偏印": "印枭", "正印": "印枭",
})

# ================== 合冲刑害规则 ==================
# 天干五合: (两干, 化神)
STEM_COMBINATIONS = (
    (frozenset({"甲", "己"}), "土"),
    (frozenset({"乙", "庚"}), "金"),
    (frozenset({"丙", "辛"}), "水"),
    (frozenset({"丁", "壬"}), "木"),
    (frozenset({"戊", "癸"}), "火"),
)

# 地支六合
BRANCH_SIX_COMBINATIONS = (
    (frozenset({"子", "丑"}), "土"),
    (frozenset({"寅", "亥"}), "木"),
    (frozenset({"卯", "戌"}), "火"),
    (frozenset({"辰", "酉"}), "金"),
    (frozenset({"巳", "申"}), "水"),
    (frozenset({"午", "未"}), "土"),
)

# 三会 / 三合: (成员顺序, 五行)
BRANCH_THREE_UNIONS = (
    (("寅", "卯", "辰"), "木"),
    (("巳", "午", "未"), "火"),
    (("申", "酉", "戌"), "金"),
    (("亥", "子", "丑"), "水"),
)
BRANCH_THREE_COMBINATIONS = (
    (("亥", "卯", "未"), "木"),
    (("寅", "午", "戌"), "火"),
    (("巳", "酉", "丑"), "金"),
    (("申", "子", "辰"), "水"),
)

BRANCH_CLASHES = (
    frozenset({"子", "午"}), frozenset({"丑", "未"}), frozenset({"寅", "申"}),
    frozenset({"卯", "酉"}), frozenset({"辰", "戌"}), frozenset({"巳", "亥"}),
)

BRANCH_HARMS = (
    frozenset({"子", "未"}), frozenset({"丑", "午"}), frozenset({"寅", "巳"}),
    frozenset({"卯", "辰"}), frozenset({"申", "亥"}), frozenset({"酉", "戌"}),
)

# 三刑 (恃势 / 无恩)，子卯相刑，辰午酉亥自刑
BRANCH_PUNISHMENT_TRIPLES = (("寅", "巳", "申"), ("丑", "未", "戌"))
BRANCH_PUNISHMENT_PAIRS = (frozenset({"子", "卯"}),)
BRANCH_SELF_PUNISHMENTS = ("辰", "午", "酉", "亥")

# ================== 十二长生 ==================
# 天干长生所在地支索引，阳顺阴逆
LIFE_STAGE_START = MappingProxyType({
    "甲": 11, "丙": 2, "戊": 2, "庚": 5, "壬": 8,
    "乙": 6, "丁": 9, "己": 9, "辛": 0, "癸": 3,
})
LIFE_STAGES = ("长生", "沐浴", "冠带", "临官", "帝旺", "衰", "病", "死", "墓", "绝", "胎", "养")

# ================== 六十甲子纳音 ==================
_NAYIN_NAMES = (
    "海中金", "炉中火", "大林木", "路旁土", "剑锋金", "山头火",
    "涧下水", "城头土", "白蜡金", "杨柳木", "泉中水", "屋上土",
    "霹雳火", "松柏木", "长流水", "沙中金", "山下火", "平地木",
    "壁上土", "金箔金", "覆灯火", "天河水", "大驿土", "钗钏金",
    "桑柘木", "大溪水", "沙中土", "天上火", "石榴木", "大海水",
)
SIXTY_PILLARS = tuple(STEMS[i % 10] + BRANCHES[i % 12] for i in range(60))
NAYIN = MappingProxyType({gz: _NAYIN_NAMES[i // 2] for i, gz in enumerate(SIXTY_PILLARS)})

# ================== 神煞 ==================
# 日柱专有
DAY_PILLAR_SHEN_SHA = (
    ("十灵日", frozenset({"甲辰", "乙亥", "丙辰", "丁酉", "戊午", "庚戌", "庚寅", "辛亥", "壬寅", "癸未"})),
    ("魁罡", frozenset({"戊戌", "庚辰", "庚戌", "壬辰"})),
    ("进神", frozenset({"甲子", "甲午", "己卯", "己酉"})),
    ("阴阳差错", frozenset({"丙子", "丁丑", "戊寅", "辛卯", "壬辰", "癸巳", "丙午", "丁未", "戊申", "辛酉", "壬戌", "癸亥"})),
    ("孤鸾煞", frozenset({"丁巳", "戊申", "戊午", "辛亥", "壬子", "丙午", "壬辰", "癸巳"})),
)

# 甲戊庚牛羊，乙己鼠猴乡，丙丁猪鸡位，壬癸兔蛇藏，六辛逢马虎
NOBLEMAN = MappingProxyType({
    "甲": ("丑", "未"), "戊": ("丑", "未"), "庚": ("丑", "未"),
    "乙": ("子", "申"), "己": ("子", "申"),
    "丙": ("亥", "酉"), "丁": ("亥", "酉"),
    "壬": ("卯", "巳"), "癸": ("卯", "巳"),
    "辛": ("午", "寅"),
})

# 以日干查地支
DAY_STEM_SHEN_SHA = (
    ("禄神", MappingProxyType({
        "甲": "寅", "乙": "卯", "丙": "巳", "丁": "午", "戊": "巳",
        "己": "午", "庚": "申", "辛": "酉", "壬": "亥", "癸": "子",
    })),
    ("文昌贵人", MappingProxyType({
        "甲": "巳", "乙": "午", "丙": "申", "丁": "酉", "戊": "申",
        "己": "酉", "庚": "亥", "辛": "子", "壬": "寅", "癸": "卯",
    })),
    ("国印贵人", MappingProxyType({
        "甲": "戌", "乙": "亥", "丙": "丑", "丁": "丑", "戊": "丑",
        "己": "丑", "庚": "辰", "辛": "辰", "壬": "未", "癸": "未",
    })),
    ("金舆", MappingProxyType({
        "甲": "辰", "乙": "巳", "丙": "未", "丁": "未", "戊": "未",
        "己": "未", "庚": "戌", "辛": "戌", "壬": "丑", "癸": "丑",
    })),
    ("羊刃", MappingProxyType({
        "甲": "卯", "乙": "辰", "丙": "午", "丁": "未", "戊": "午",
        "己": "未", "庚": "酉", "辛": "戌", "壬": "子", "癸": "丑",
    })),
    ("红艳", MappingProxyType({
        "甲": "午", "乙": "申", "丙": "寅", "丁": "未", "戊": "辰",
        "己": "辰", "庚": "戌", "辛": "酉", "壬": "子", "癸": "申",
    })),
)

# 以月支查天干 (天德亦可落在地支)
HEAVENLY_VIRTUE = MappingProxyType({
    "寅": "丁", "卯": "申", "辰": "壬", "巳": "辛", "午": "亥", "未": "甲",
    "申": "癸", "酉": "寅", "戌": "丙", "亥": "乙", "子": "巳", "丑": "庚",
})
MONTHLY_VIRTUE = MappingProxyType({
    "寅": "丙", "午": "丙", "戌": "丙",
    "申": "壬", "子": "壬", "辰": "壬",
    "亥": "甲", "卯": "甲", "未": "甲",
    "巳": "庚", "酉": "庚", "丑": "庚",
})

# 以年支、日支所在三合局查地支
SAN_HE_SHEN_SHA = (
    (frozenset({"申", "子", "辰"}), (("桃花", "酉"), ("驿马", "寅"), ("华盖", "辰"), ("将星", "子"), ("劫煞", "巳"), ("灾煞", "午"), ("亡神", "亥"))),
    (frozenset({"寅", "午", "戌"}), (("桃花", "卯"), ("驿马", "申"), ("华盖", "戌"), ("将星", "午"), ("劫煞", "亥"), ("灾煞", "子"), ("亡神", "巳"))),
    (frozenset({"巳", "酉", "丑"}), (("桃花", "午"), ("驿马", "亥"), ("华盖", "丑"), ("将星", "酉"), ("劫煞", "寅"), ("灾煞", "卯"), ("亡神", "申"))),
    (frozenset({"亥", "卯", "未"}), (("桃花", "子"), ("驿马", "巳"), ("华盖", "未"), ("将星", "卯"), ("劫煞", "申"), ("灾煞", "酉"), ("亡神", "寅"))),
)
HEAVENLY_JOY = MappingProxyType({
    "子": "酉", "丑": "申", "寅": "未", "卯": "午", "辰": "巳", "巳": "辰",
    "午": "卯", "未": "寅", "申": "丑", "酉": "子", "戌": "亥", "亥": "戌",
})

# ================== 气候系数 ==================
TEMPERATURE_COEFFICIENTS = MappingProxyType({
    "甲": 1, "乙": -1, "丙": 7, "丁": 4, "戊": 2,
    "己": -2, "庚": -1, "辛": -2, "壬": -6, "癸": -4,
})


def element_of(char):
    """干支五行，未知字符返回 None"""
    return ELEMENT_OF.get(char)


def polarity_of(char):
    return POLARITY_OF.get(char)


def hidden_stems_of(branch):
    return HIDDEN_STEMS.get(branch, ())


def main_hidden_stem(branch):
    """地支本气 (权重最大的藏干)"""
    hidden = HIDDEN_STEMS.get(branch)
    if not hidden:
        return None
    return max(hidden, key=lambda item: item[1])[0]


def ten_god(day_master, target):
    """
    按五行生克与阴阳同异计算十神。
    任一天干未知时返回 None。
    """
    dm_wx = ELEMENT_OF.get(day_master)
    tg_wx = ELEMENT_OF.get(target)
    if day_master not in STEMS or target not in STEMS:
        return None

    same_polarity = POLARITY_OF[day_master] == POLARITY_OF[target]
    if dm_wx == tg_wx:
        return "比肩" if same_polarity else "劫财"
    if GENERATES[dm_wx] == tg_wx:
        return "食神" if same_polarity else "伤官"
    if GENERATES[tg_wx] == dm_wx:
        return "偏印" if same_polarity else "正印"
    if RESTRAINS[dm_wx] == tg_wx:
        return "偏财" if same_polarity else "正财"
    return "七杀" if same_polarity else "正官"


def element_relation(source, target):
    """source 五行对 target 五行的作用: 同 / 生 / 克 / 被生 / 被克"""
    if source is None or target is None:
        return None
    if source == target:
        return "同"
    if GENERATES[source] == target:
        return "生"
    if RESTRAINS[source] == target:
        return "克"
    if GENERATES[target] == source:
        return "被生"
    return "被克"
