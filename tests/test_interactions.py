from interactions import (
    Flow,
    RelationKind,
    ResolverOptions,
    calculate_interactions,
    is_adjacent,
)
from logic import StemBranchChart


def chart(*pillars):
    return StemBranchChart.from_pillars(list(pillars))


def by_kind(graph, kind):
    return [r for r in graph.relations if r.kind == kind]


def test_adjacency():
    assert is_adjacent(0, 1)
    assert is_adjacent(5, 6)
    assert is_adjacent(2, 6)   # 日干与日支
    assert not is_adjacent(0, 2)
    assert not is_adjacent(3, 4)  # 时干与年支不相邻
    assert not is_adjacent(0, 5)


def test_stem_combination_and_clash():
    graph = calculate_interactions(chart("甲子", "己巳", "甲午", "丙寅"))

    he = by_kind(graph, RelationKind.HE)
    assert {r.positions for r in he} == {(0, 1), (1, 2)}
    assert all(r.element == "土" and r.label == "合" and r.adjacent for r in he)

    chong = by_kind(graph, RelationKind.CHONG)
    assert len(chong) == 1
    assert chong[0].chars == ("子", "午")
    assert chong[0].positions == (4, 6)
    assert chong[0].distance == 2
    assert not chong[0].adjacent
    assert chong[0] in graph.distant_relations


def test_half_combination_punishment_and_harm():
    graph = calculate_interactions(chart("甲子", "己巳", "甲午", "丙寅"))

    san_he = by_kind(graph, RelationKind.SAN_HE)
    assert [r.label for r in san_he] == ["半合火局"]
    assert set(san_he[0].chars) == {"寅", "午"}

    xing = by_kind(graph, RelationKind.XING)
    assert [r.label for r in xing] == ["相刑"]
    assert set(xing[0].chars) == {"寅", "巳"}

    hai = by_kind(graph, RelationKind.HAI)
    assert len(hai) == 1
    assert set(hai[0].chars) == {"巳", "寅"}


def test_full_union_reports_everything_by_default():
    graph = calculate_interactions(chart("丁亥", "壬子", "乙丑", "丙戌"))
    kinds = [r.kind for r in graph.relations]

    assert RelationKind.SAN_HUI in kinds
    assert RelationKind.LIU_HE in kinds
    assert RelationKind.HE in kinds
    union = by_kind(graph, RelationKind.SAN_HUI)[0]
    assert union.label == "三会水局"
    assert union.positions == (4, 5, 6)
    assert not union.adjacent


def test_suppress_subsumed_drops_pairs_inside_triple():
    graph = calculate_interactions(chart("丁亥", "壬子", "乙丑", "丙戌"), ResolverOptions(suppress_subsumed=True))

    assert by_kind(graph, RelationKind.LIU_HE) == []
    assert by_kind(graph, RelationKind.SAN_HUI)
    # 丑戌相刑不属于合类，保留
    assert [r.label for r in by_kind(graph, RelationKind.XING)] == ["相刑"]


def test_self_punishment():
    graph = calculate_interactions(chart("甲午", "丙午", "庚子", "壬申"))
    labels = [r.label for r in by_kind(graph, RelationKind.XING)]
    assert "自刑" in labels


def test_flows_are_adjacent_only():
    graph = calculate_interactions(chart("甲子", "己巳", "甲午", "丙寅"))

    assert Flow(0, 1, "Ke", "克") in graph.flows
    assert Flow(1, 0, "Ke", "克") not in graph.flows
    assert Flow(2, 3, "Sheng", "生") in graph.flows
    # 年干甲生时干丙，但两者不相邻
    assert Flow(0, 3, "Sheng", "生") not in graph.flows
    # 日干甲生日支午
    assert Flow(2, 6, "Sheng", "生") in graph.flows


def test_unknown_symbols_produce_nothing():
    graph = calculate_interactions(chart("??", "??", "??", "??"))
    assert graph.relations == []
    assert graph.flows == []
    assert len(graph.nodes) == 8
    assert all(n.element is None for n in graph.nodes)


def test_to_dict():
    data = calculate_interactions(chart("甲子", "己巳", "甲午", "丙寅")).to_dict()
    assert len(data["nodes"]) == 8
    assert data["nodes"][4] == {"index": 4, "char": "子", "element": "水", "pillar": "year", "row": "branch"}
    chong = [r for r in data["relations"] if r["kind"] == "Chong"][0]
    assert chong["positions"] == [4, 6]
