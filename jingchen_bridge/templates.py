from typing import List

from jingchen_bridge.models import ContentItem, LabelPage
from jingchen_bridge.orders import Order, Product
from jingchen_bridge.workarounds import label_border

LABEL_WIDTH = 50
LABEL_HEIGHT = 30


class LabelLayout:
    """Collects label elements in millimetres for a fixed-size label."""

    def __init__(self, width: float = LABEL_WIDTH, height: float = LABEL_HEIGHT):
        self.width = width
        self.height = height
        self.items: List[ContentItem] = []

    def border(self, margin: float = 2, line_width: float = 0.5) -> "LabelLayout":
        self.items.append(ContentItem(type="border", line_width=line_width, **label_border(self.width, self.height, margin)))
        return self

    def text(self, x: float, y: float, value: str, font_size: float = 3, align: str = "left", bold: bool = False) -> "LabelLayout":
        self.items.append(ContentItem(
            type="text",
            x=x,
            y=y,
            width=self.width - x - 2,
            height=font_size + 4,
            value=value,
            font_size=font_size,
            align=align,
            bold=bold,
        ))
        return self

    def barcode(self, x: float, y: float, value: str, barcode_type: str = "CODE128", height: float = 10, show_text: bool = True) -> "LabelLayout":
        self.items.append(ContentItem(
            type="barcode",
            x=x,
            y=y,
            width=self.width - x - 2,
            height=height,
            value=value,
            barcode_type=barcode_type,
            barcode_font_size=2,
            barcode_text_height=2 if show_text else 0,
            text_position="bottom" if show_text else "none",
        ))
        return self

    def hline(self, y: float, line_width: float = 0.3) -> "LabelLayout":
        self.items.append(ContentItem(type="line", x=2, y=y, width=self.width - 4, height=line_width))
        return self

    def page(self, copies: int = 1) -> LabelPage:
        return LabelPage(content=list(self.items), copies=copies, width=self.width, height=self.height)


# -----------------------------
# Presets
# -----------------------------
def product_label(product: Product) -> LabelLayout:
    return (
        LabelLayout()
        .border()
        .text(3, 4, f"品號：{product.product_no}")
        .text(3, 11, f"品名：{product.product_name}")
        .text(3, 18, f"規格：{product.product_spec}")
    )


def order_label(order_no: str) -> LabelLayout:
    return (
        LabelLayout()
        .border()
        .text(2, 4, "單號", font_size=5, align="center", bold=True)
        .text(2, 14, order_no, font_size=8, align="center", bold=True)
    )


def barcode_label(order_no: str, product: Product) -> LabelLayout:
    return (
        LabelLayout()
        .border()
        .text(3, 3, f"單號：{order_no}", bold=True)
        .hline(8)
        .barcode(3, 9, product.product_no, height=6, show_text=False)
        .hline(16)
        .text(3, 17, f"規格：{product.product_spec}", font_size=2.8)
    )


def order_pages(orders: List[Order], copies: int = 1, include_order_labels: bool = True, with_barcode: bool = False) -> List[LabelPage]:
    pages = []
    for order in orders:
        if include_order_labels:
            pages.append(order_label(order.order_no).page(copies))
        for product in order.products:
            layout = barcode_label(order.order_no, product) if with_barcode else product_label(product)
            pages.append(layout.page(copies))
    return pages


def product_pages(products: List[Product], copies: int = 1) -> List[LabelPage]:
    return [product_label(p).page(copies) for p in products]
