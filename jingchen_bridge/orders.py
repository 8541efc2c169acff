"""
Markdown order files.

Orders format::

    ## 單號: 5103-20251009010

    品號: ABC-001
    品名: Product name
    規格: Spec

A bare ``## 5103-20251009010`` heading is accepted too. Files without order
headings are read as a flat product list.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional

ORDER_PREFIX = "## 單號:"
NO_PREFIX = "品號:"
NAME_PREFIX = "品名:"
SPEC_PREFIX = "規格:"

_BARE_ORDER = re.compile(r"^## \d{4,}", re.MULTILINE)


@dataclass
class Product:
    product_no: str
    product_name: str
    product_spec: str


@dataclass
class Order:
    order_no: str
    products: List[Product] = field(default_factory=list)


class _Draft:
    def __init__(self, product_no: Optional[str] = None):
        self.product_no = product_no
        self.product_name: Optional[str] = None
        self.product_spec: Optional[str] = None

    def complete(self) -> Optional[Product]:
        if self.product_no and self.product_name and self.product_spec:
            return Product(self.product_no, self.product_name, self.product_spec)
        return None


def _value(line: str, prefix: str) -> str:
    return line[len(prefix):].strip()


def parse_products(content: str) -> List[Product]:
    products = []
    draft = _Draft()
    for line in content.splitlines():
        line = line.strip()
        if line.startswith(NO_PREFIX):
            draft.product_no = _value(line, NO_PREFIX)
        elif line.startswith(NAME_PREFIX):
            draft.product_name = _value(line, NAME_PREFIX)
        elif line.startswith(SPEC_PREFIX):
            draft.product_spec = _value(line, SPEC_PREFIX)
            product = draft.complete()
            if product:
                products.append(product)
                draft = _Draft()
    return products


def parse_orders(content: str) -> List[Order]:
    orders = []
    current: Optional[Order] = None
    draft = _Draft()

    def flush_product():
        product = draft.complete()
        if product and current is not None:
            current.products.append(product)

    for line in content.splitlines():
        line = line.strip()
        if line.startswith("## ") and not line.startswith("### "):
            flush_product()
            draft = _Draft()
            if current is not None and current.products:
                orders.append(current)
            if line.startswith(ORDER_PREFIX):
                order_no = _value(line, ORDER_PREFIX)
            else:
                order_no = line[3:].strip()
            current = Order(order_no)
        elif line.startswith(NO_PREFIX):
            flush_product()
            draft = _Draft(_value(line, NO_PREFIX))
        elif line.startswith(NAME_PREFIX):
            draft.product_name = _value(line, NAME_PREFIX)
        elif line.startswith(SPEC_PREFIX):
            draft.product_spec = _value(line, SPEC_PREFIX)

    flush_product()
    if current is not None and current.products:
        orders.append(current)
    return orders


def has_orders(content: str) -> bool:
    return ORDER_PREFIX in content or bool(_BARE_ORDER.search(content))


def parse(content: str):
    """Returns ("orders", [Order]) or ("products", [Product])."""
    if has_orders(content):
        return "orders", parse_orders(content)
    return "products", parse_products(content)


def count_labels(orders: List[Order], include_order_labels: bool = True) -> int:
    count = 0
    for order in orders:
        if include_order_labels:
            count += 1
        count += len(order.products)
    return count
