"""Content-size measurement with cairo.

The layout engine only estimates sizes for nodes it has never seen measured.
`ContentMeasurer` produces the real sizes (text laid out with cairo's toy
font API on an off-screen surface) which are then fed back through
`Canvas.report_content_size`.
"""

import logging
from typing import List, Optional, Tuple

import cairo

from mindcanvas.config import LayoutConfig
from mindcanvas.document import ImageContent, LinkContent, Node, TextContent

logger = logging.getLogger(__name__)


class ContentMeasurer:
    """Measures node content boxes for a given font."""

    def __init__(self, config: Optional[LayoutConfig] = None,
                 font_family: str = "JetBrains Mono", font_size: float = 14,
                 padding_y: float = 10, line_spacing: float = 1.4):
        self.config = config or LayoutConfig()
        self.font_size = font_size
        self.padding_y = padding_y
        self.line_spacing = line_spacing

        # 1x1 surface: only the font metrics are needed
        self._surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, 1, 1)
        self._cr = cairo.Context(self._surface)
        self._cr.select_font_face(font_family, cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
        self._cr.set_font_size(font_size)

    def text_width(self, text: str) -> float:
        return self._cr.text_extents(text).x_advance

    def wrap(self, text: str, max_line_width: float) -> List[str]:
        """Greedy word wrap. Words wider than a line get a line of their own."""
        lines: List[str] = []
        for paragraph in text.split("\n"):
            current = ""
            for word in paragraph.split(" "):
                candidate = f"{current} {word}" if current else word
                if current and self.text_width(candidate) > max_line_width:
                    lines.append(current)
                    current = word
                else:
                    current = candidate
            lines.append(current)
        return lines

    def measure_text(self, text: str) -> Tuple[float, float]:
        config = self.config
        inner_max = config.max_width - config.padding_x
        lines = self.wrap(text, inner_max)
        widest = max((self.text_width(line) for line in lines), default=0.0)

        width = min(config.max_width, max(config.min_width, widest + config.padding_x))
        height = len(lines) * self.font_size * self.line_spacing + self.padding_y * 2
        return width, max(config.min_height, height)

    def measure(self, node: Node) -> Optional[Tuple[float, float]]:
        """Content box for `node`, or None when it cannot be measured."""
        config = self.config
        match node.content:
            case TextContent(text=text):
                return self.measure_text(text)
            case ImageContent(ratio=ratio):
                width = node.width or config.image_default_width
                if not ratio or ratio <= 0:
                    return None
                return width, width / ratio
            case LinkContent():
                return config.link_card_width, config.link_card_height
            case _:
                return None


def measure_document(canvas, measurer: Optional[ContentMeasurer] = None) -> int:
    """Measure every auto-sized node of `canvas` and lay it out once.

    Returns the number of nodes whose size changed.
    """
    measurer = measurer or ContentMeasurer(canvas.config.layout)
    changed = 0
    for node in list(canvas.document.nodes.values()):
        if node.fixed_size:
            continue
        size = measurer.measure(node)
        if size is None:
            logger.debug("Cannot measure %s (%s)", node.id, node.content_type)
            continue
        if canvas.report_content_size(node.id, *size):
            changed += 1
    canvas.flush_layout()
    logger.debug("Measured %d node(s)", changed)
    return changed
