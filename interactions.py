"""
八字关系解析 - 天干五合、地支六合/三合/三会/冲/刑/害，以及相邻干支的生克流向。

Positions use the chart slot indices: 0-3 are year/month/day/hour stems,
4-7 are year/month/day/hour branches.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from itertools import combinations
from typing import List, Optional, Tuple

from bazi_tables import (
    BRANCH_CLASHES,
    BRANCH_HARMS,
    BRANCH_PUNISHMENT_PAIRS,
    BRANCH_PUNISHMENT_TRIPLES,
    BRANCH_SELF_PUNISHMENTS,
    BRANCH_SIX_COMBINATIONS,
    BRANCH_THREE_COMBINATIONS,
    BRANCH_THREE_UNIONS,
    ELEMENT_OF,
    GENERATES,
    PILLAR_KEYS,
    RESTRAINS,
    STEM_COMBINATIONS,
)
from logic import StemBranchChart


class RelationKind(str, Enum):
    HE = "He"            # 天干五合
    LIU_HE = "LiuHe"     # 地支六合
    SAN_HE = "SanHe"     # 地支三合 (含半合)
    SAN_HUI = "SanHui"   # 地支三会
    CHONG = "Chong"      # 相冲
    XING = "Xing"        # 相刑
    HAI = "Hai"          # 相害


@dataclass(frozen=True)
class Relation:
    kind: RelationKind
    positions: Tuple[int, ...]
    chars: Tuple[str, ...]
    label: str
    element: Optional[str] = None
    distance: int = 0
    adjacent: bool = False

    def to_dict(self):
        data = asdict(self)
        data["kind"] = self.kind.value
        data["positions"] = list(self.positions)
        data["chars"] = list(self.chars)
        return data


@dataclass(frozen=True)
class Flow:
    """相邻两位之间的生克箭头"""
    source: int
    target: int
    kind: str  # "Sheng" | "Ke"
    label: str  # "生" | "克"

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Node:
    index: int
    char: str
    element: Optional[str]
    pillar: str
    row: str  # "stem" | "branch"

    def to_dict(self):
        return asdict(self)


@dataclass
class InteractionGraph:
    nodes: List[Node] = field(default_factory=list)
    flows: List[Flow] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)

    @property
    def adjacent_relations(self) -> List[Relation]:
        return [r for r in self.relations if r.adjacent]

    @property
    def distant_relations(self) -> List[Relation]:
        return [r for r in self.relations if not r.adjacent]

    def to_dict(self):
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "flows": [f.to_dict() for f in self.flows],
            "relations": [r.to_dict() for r in self.relations],
        }


@dataclass(frozen=True)
class ResolverOptions:
    """
    suppress_subsumed: 三合/三会/三刑成局时，不再单独列出落在局内的
    同类两两关系 (六合、半合、相刑)。默认全部列出。
    """
    suppress_subsumed: bool = False


def pillar_of(position: int) -> int:
    return position % 4


def is_adjacent(a: int, b: int) -> bool:
    """同行相邻两柱，或同一柱的干与支"""
    same_row = (a < 4) == (b < 4)
    if same_row:
        return abs(a - b) == 1
    return pillar_of(a) == pillar_of(b)


def _make(kind, positions, slots, label, element=None):
    positions = tuple(positions)
    pillars = [pillar_of(p) for p in positions]
    adjacent = len(positions) == 2 and is_adjacent(*positions)
    return Relation(
        kind=kind,
        positions=positions,
        chars=tuple(slots[p] for p in positions),
        label=label,
        element=element,
        distance=max(pillars) - min(pillars),
        adjacent=adjacent,
    )


def _first_positions(branches, members):
    """每个成员在地支中第一次出现的位置 (地支槽位 4-7)，缺失的成员不计"""
    found = []
    for m in members:
        if m in branches:
            found.append(branches.index(m) + 4)
    return found


class InteractionResolver:
    """八字关系解析器"""

    def __init__(self, options: ResolverOptions = None):
        self.options = options or ResolverOptions()

    def resolve(self, chart: StemBranchChart) -> InteractionGraph:
        slots = chart.slots
        nodes = [
            Node(
                index=i,
                char=c,
                element=ELEMENT_OF.get(c),
                pillar=PILLAR_KEYS[pillar_of(i)],
                row="stem" if i < 4 else "branch",
            )
            for i, c in enumerate(slots)
        ]
        relations = self.find_relations(slots)
        return InteractionGraph(nodes=nodes, flows=self.find_flows(slots), relations=relations)

    # ================== 生克流向 ==================
    def find_flows(self, slots) -> List[Flow]:
        pairs = []
        for i in range(3):
            pairs.append((i, i + 1))          # 天干相邻
            pairs.append((i + 4, i + 5))      # 地支相邻
        for i in range(4):
            pairs.append((i, i + 4))          # 同柱干支

        flows = []
        for a, b in pairs:
            for src, dst in ((a, b), (b, a)):
                src_wx = ELEMENT_OF.get(slots[src])
                dst_wx = ELEMENT_OF.get(slots[dst])
                if src_wx is None or dst_wx is None:
                    continue
                if GENERATES[src_wx] == dst_wx:
                    flows.append(Flow(src, dst, "Sheng", "生"))
                elif RESTRAINS[src_wx] == dst_wx:
                    flows.append(Flow(src, dst, "Ke", "克"))
        return flows

    # ================== 合冲刑害 ==================
    def find_relations(self, slots) -> List[Relation]:
        stems = slots[:4]
        branches = slots[4:]
        relations = []

        # 1. 天干五合
        for i, j in combinations(range(4), 2):
            pair = {stems[i], stems[j]}
            for members, element in STEM_COMBINATIONS:
                if pair == members:
                    relations.append(_make(RelationKind.HE, (i, j), slots, "合", element))

        # 2. 地支六合
        for i, j in combinations(range(4, 8), 2):
            pair = {slots[i], slots[j]}
            for members, element in BRANCH_SIX_COMBINATIONS:
                if pair == members:
                    relations.append(_make(RelationKind.LIU_HE, (i, j), slots, "合", element))

        # 3. 三合 (全局 / 半合)
        triples = []
        for members, element in BRANCH_THREE_COMBINATIONS:
            found = _first_positions(branches, members)
            if len(found) == 3:
                rel = _make(RelationKind.SAN_HE, found, slots, f"三合{element}局", element)
                relations.append(rel)
                triples.append(rel)
            elif len(found) == 2:
                relations.append(_make(RelationKind.SAN_HE, found, slots, f"半合{element}局", element))

        # 4. 三会 (须三支俱全)
        for members, element in BRANCH_THREE_UNIONS:
            found = _first_positions(branches, members)
            if len(found) == 3:
                rel = _make(RelationKind.SAN_HUI, found, slots, f"三会{element}局", element)
                relations.append(rel)
                triples.append(rel)

        # 5. 相冲
        for i, j in combinations(range(4, 8), 2):
            if {slots[i], slots[j]} in BRANCH_CLASHES:
                relations.append(_make(RelationKind.CHONG, (i, j), slots, "冲"))

        # 6. 相刑
        for members in BRANCH_PUNISHMENT_TRIPLES:
            found = _first_positions(branches, members)
            if len(found) == 3:
                rel = _make(RelationKind.XING, found, slots, "三刑")
                relations.append(rel)
                triples.append(rel)
            elif len(found) == 2:
                relations.append(_make(RelationKind.XING, found, slots, "相刑"))
        for i, j in combinations(range(4, 8), 2):
            if {slots[i], slots[j]} in BRANCH_PUNISHMENT_PAIRS:
                relations.append(_make(RelationKind.XING, (i, j), slots, "相刑"))
        for branch in BRANCH_SELF_PUNISHMENTS:
            found = [i + 4 for i, b in enumerate(branches) if b == branch]
            if len(found) >= 2:
                relations.append(_make(RelationKind.XING, found[:2], slots, "自刑"))

        # 7. 相害
        for i, j in combinations(range(4, 8), 2):
            if {slots[i], slots[j]} in BRANCH_HARMS:
                relations.append(_make(RelationKind.HAI, (i, j), slots, "害"))

        if self.options.suppress_subsumed and triples:
            relations = [r for r in relations if not _is_subsumed(r, triples)]
        return relations


_COMBINING_KINDS = frozenset({RelationKind.LIU_HE, RelationKind.SAN_HE, RelationKind.SAN_HUI})


def _family(kind: RelationKind) -> str:
    return "combine" if kind in _COMBINING_KINDS else kind.value


def _is_subsumed(relation: Relation, triples: List[Relation]) -> bool:
    if len(relation.positions) != 2:
        return False
    for triple in triples:
        if set(relation.positions) <= set(triple.positions) and _family(relation.kind) == _family(triple.kind):
            return True
    return False


_DEFAULT_RESOLVER = InteractionResolver()


def calculate_interactions(chart: StemBranchChart, options: ResolverOptions = None) -> InteractionGraph:
    """Resolve every stem/branch relation of a chart."""
    if options is None:
        return _DEFAULT_RESOLVER.resolve(chart)
    return InteractionResolver(options).resolve(chart)
