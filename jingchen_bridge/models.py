import time
import uuid
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from jingchen_bridge.commands import PrinterHandle, PrinterKind
from jingchen_bridge.settings import BridgeSettings

LABEL_TYPE_MAP = {
    "GAP_PAPER": 1,
    "BLACK_MARK": 2,
    "CONTINUOUS": 3,
    "HOLE_PAPER": 4,
    "TRANSPARENT": 5,
    "NAMEPLATE": 6,
    "BLACK_MARK_GAP": 10,
}

PRINT_MODE_MAP = {
    "THERMAL": 1,
    "TRANSFER": 2,
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentItem(CamelModel):
    """One drawable element of a label. Units are millimetres."""
    type: Literal["text", "barcode", "qrcode", "qrcode_logo", "image", "line", "graph", "border"]
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    value: Optional[str] = None
    rotate: Optional[int] = None

    # text
    font_size: Optional[float] = None
    font_family: Optional[str] = None
    align: Optional[Literal["left", "center", "right"]] = None
    vertical_align: Optional[Literal["top", "middle", "bottom"]] = None
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    letter_spacing: Optional[float] = None
    line_spacing: Optional[float] = None
    line_mode: Optional[int] = None

    # barcode
    barcode_type: Optional[str] = None
    text_position: Optional[Literal["bottom", "top", "none"]] = None
    barcode_font_size: Optional[float] = None
    barcode_text_height: Optional[float] = None

    # 2D codes
    qrcode_type: Optional[str] = None
    logo_base64: Optional[str] = None
    logo_position: Optional[int] = None
    logo_scale: Optional[float] = None
    correct_level: Optional[int] = None

    # image
    image_data: Optional[str] = None
    image_processing_type: Optional[int] = None
    image_processing_value: Optional[int] = None

    # line / graph / border
    line_type: Optional[int] = None
    line_width: Optional[float] = None
    dash_width: Optional[List[float]] = None
    graph_type: Optional[int] = None
    corner_radius: Optional[float] = None


class PrinterIn(CamelModel):
    name: str
    port: int
    kind: PrinterKind = PrinterKind.USB

    def to_handle(self) -> PrinterHandle:
        return PrinterHandle(self.name, self.port, self.kind)


class LabelIn(CamelModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    rotate: int = 0
    density: Optional[int] = None
    label_type: Optional[Union[int, str]] = None
    print_mode: Optional[Union[int, str]] = None


class LabelPage(CamelModel):
    content: List[ContentItem]
    copies: int = Field(1, ge=1)
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    rotate: Optional[int] = None


class PrintRequest(CamelModel):
    printer: Optional[PrinterIn] = None
    label: LabelIn
    content: Optional[List[ContentItem]] = None
    labels: Optional[List[LabelPage]] = None
    copies: int = Field(1, ge=1)
    job_id: Optional[str] = None

    @model_validator(mode="after")
    def _content_or_labels(self):
        if (self.content is None) == (self.labels is None):
            raise ValueError("Provide exactly one of content[] or labels[]")
        if self.labels is not None and not self.labels:
            raise ValueError("labels[] must not be empty")
        if self.labels is not None and "copies" in self.model_fields_set:
            raise ValueError("copies applies to content[]; set copies on each entry of labels[]")
        return self

    def to_spec(self, settings: BridgeSettings) -> "JobSpec":
        if self.labels is not None:
            pages = self.labels
        else:
            pages = [LabelPage(content=self.content, copies=self.copies)]
        resolved = [
            page.model_copy(update={
                "width": page.width or self.label.width,
                "height": page.height or self.label.height,
                "rotate": self.label.rotate if page.rotate is None else page.rotate,
            })
            for page in pages
        ]
        return JobSpec(
            job_id=self.job_id or str(uuid.uuid4()),
            printer=self.printer,
            density=settings.default_density if self.label.density is None else self.label.density,
            label_type=_resolve(self.label.label_type, LABEL_TYPE_MAP, settings.default_label_type),
            print_mode=_resolve(self.label.print_mode, PRINT_MODE_MAP, settings.default_print_mode),
            labels=resolved,
        )


class PreviewRequest(CamelModel):
    label: LabelIn
    content: List[ContentItem]
    display_scale: Optional[float] = Field(None, gt=0)
    show_border: bool = False


class WifiConfigIn(CamelModel):
    wifi_name: str = Field(min_length=1)
    wifi_password: str


def _resolve(value: Optional[Union[int, str]], mapping: dict, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    if value.isdigit():
        return int(value)
    return mapping.get(value.upper(), default)


class JobSpec(BaseModel):
    job_id: str
    printer: Optional[PrinterIn] = None
    density: int
    label_type: int
    print_mode: int
    labels: List[LabelPage]

    @property
    def total_copies(self) -> int:
        return sum(page.copies for page in self.labels)


class JobRecord(CamelModel):
    job_id: str
    printer: Optional[str] = None
    created_at: float = Field(default_factory=lambda: time.time())
    updated_at: float = Field(default_factory=lambda: time.time())
    status: str = "printing"  # printing|done|failed|cancelled
    copies: int = 0
    device_count: int = 0
    placeholder: bool = False
    labels_printed: int = 0
    copies_printed: int = 0
    stop_requested: bool = False
    last_error: Optional[str] = None
    error_kind: Optional[str] = None
    error_code: Optional[int] = None

    def touch(self, **changes) -> None:
        for k, v in changes.items():
            setattr(self, k, v)
        self.updated_at = time.time()
