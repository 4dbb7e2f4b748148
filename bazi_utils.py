"""
SVG 绘图工具 - 八字关系图与六爻卦象图。
"""
from typing import Iterable, Optional

import svgwrite

from bazi_tables import PILLAR_LABELS
from interactions import InteractionGraph, RelationKind

ELEMENT_COLORS = {
    "木": "#4caf50",
    "火": "#e53935",
    "土": "#a1887f",
    "金": "#fbc02d",
    "水": "#1e88e5",
}
UNKNOWN_COLOR = "#9e9e9e"

FLOW_COLORS = {"Sheng": "#2e7d32", "Ke": "#c62828"}
# 合类实线，冲刑害虚线
RELATION_STYLES = {
    RelationKind.HE: ("#6a1b9a", None),
    RelationKind.LIU_HE: ("#6a1b9a", None),
    RelationKind.SAN_HE: ("#6a1b9a", None),
    RelationKind.SAN_HUI: ("#6a1b9a", None),
    RelationKind.CHONG: ("#d84315", "6,4"),
    RelationKind.XING: ("#5d4037", "2,3"),
    RelationKind.HAI: ("#455a64", "4,2,1,2"),
}


class InteractionGraphRenderer:
    """
    四柱八字关系图：上排天干、下排地支，自左至右为年月日时。
    相邻生克画箭头，相邻合冲刑害画连线，远距与三字关系列在底部文字带。
    """

    def __init__(self, col_width: int = 90, row_gap: int = 110, node_radius: int = 24, margin: int = 50):
        self.col_width = col_width
        self.row_gap = row_gap
        self.node_radius = node_radius
        self.margin = margin

    def position(self, index: int):
        col = index % 4
        row = 0 if index < 4 else 1
        return (self.margin + col * self.col_width, self.margin + 20 + row * self.row_gap)

    def _shorten(self, start, end):
        """把线段两端收缩到圆周上"""
        (x1, y1), (x2, y2) = start, end
        dx, dy = x2 - x1, y2 - y1
        length = (dx * dx + dy * dy) ** 0.5 or 1
        r = self.node_radius + 2
        return (x1 + dx * r / length, y1 + dy * r / length), (x2 - dx * r / length, y2 - dy * r / length)

    def _arrow_markers(self, dwg):
        markers = {}
        for kind, color in FLOW_COLORS.items():
            marker = dwg.marker(insert=(8, 5), size=(10, 10), orient="auto", id=f"arrow-{kind.lower()}")
            marker.viewbox(0, 0, 10, 10)
            marker.add(dwg.path(d="M0,0 L10,5 L0,10 z", fill=color))
            dwg.defs.add(marker)
            markers[kind] = marker
        return markers

    def render(self, graph: InteractionGraph) -> str:
        distant = [r for r in graph.relations if not r.adjacent]
        width = self.margin * 2 + self.col_width * 3
        band_top = self.margin + 20 + self.row_gap + self.node_radius + 30
        height = band_top + 22 * max(1, len(distant)) + 10

        dwg = svgwrite.Drawing(size=(width, height))
        dwg.add(dwg.rect(insert=(0, 0), size=(width, height), fill="white"))
        markers = self._arrow_markers(dwg)

        for col, label in enumerate(PILLAR_LABELS):
            dwg.add(dwg.text(f"{label}柱", insert=(self.margin + col * self.col_width, 18),
                             text_anchor="middle", font_size=13, fill="#555"))

        for relation in graph.relations:
            if not relation.adjacent:
                continue
            color, dash = RELATION_STYLES[relation.kind]
            a, b = (self.position(p) for p in relation.positions)
            start, end = self._shorten(a, b)
            line = dwg.line(start=start, end=end, stroke=color, stroke_width=3, stroke_opacity=0.5)
            if dash:
                line.dasharray(dash.split(","))
            dwg.add(line)
            mid = ((start[0] + end[0]) / 2, (start[1] + end[1]) / 2 - 6)
            dwg.add(dwg.text(relation.label, insert=mid, text_anchor="middle", font_size=11, fill=color))

        for flow in graph.flows:
            start, end = self._shorten(self.position(flow.source), self.position(flow.target))
            line = dwg.line(start=start, end=end, stroke=FLOW_COLORS[flow.kind], stroke_width=1.5)
            line["marker-end"] = markers[flow.kind].get_funciri()
            dwg.add(line)

        for node in graph.nodes:
            x, y = self.position(node.index)
            color = ELEMENT_COLORS.get(node.element, UNKNOWN_COLOR)
            dwg.add(dwg.circle(center=(x, y), r=self.node_radius, fill=color, fill_opacity=0.85, stroke="#333"))
            dwg.add(dwg.text(node.char, insert=(x, y + 7), text_anchor="middle", font_size=20, fill="white"))

        for i, relation in enumerate(distant):
            where = "、".join(f"{PILLAR_LABELS[p % 4]}{'干' if p < 4 else '支'}" for p in relation.positions)
            color, _ = RELATION_STYLES[relation.kind]
            dwg.add(dwg.text(f"{''.join(relation.chars)} {relation.label}（{where}）",
                             insert=(10, band_top + 22 * i), font_size=13, fill=color))

        return dwg.tostring()


def render_interaction_graph(graph: InteractionGraph) -> str:
    return InteractionGraphRenderer().render(graph)


def draw_hexagram_svg(binary_code: str, moving_positions: Optional[Iterable[int]] = None) -> str:
    """
    绘制六爻卦象的 SVG 图

    :param binary_code: 6位二进制字符串，如 "111000" (从初爻到上爻，即从下到上)
    :param moving_positions: 动爻位置 (1-6)，在爻右侧画红点
    :return: SVG 字符串
    """
    if len(binary_code) != 6 or set(binary_code) - {"0", "1"}:
        raise ValueError("卦码必须为6位二进制字符串")
    moving = set(moving_positions or ())
    dwg = svgwrite.Drawing(size=(110, 120))

    for i, bit in enumerate(binary_code):
        y = 100 - i * 18  # 从下往上画
        if bit == '1':  # 阳爻
            dwg.add(dwg.rect(insert=(10, y), size=(80, 10), fill="black"))
        else:  # 阴爻
            dwg.add(dwg.rect(insert=(10, y), size=(35, 10), fill="black"))
            dwg.add(dwg.rect(insert=(55, y), size=(35, 10), fill="black"))
        if i + 1 in moving:
            dwg.add(dwg.circle(center=(101, y + 5), r=4, fill="#c62828"))

    return dwg.tostring()
