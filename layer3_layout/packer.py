"""
Layer 3 — Layout Packer
Packs photos into a grid on a printable page with dashed cutting guides.

All sizes are pixels at 300 DPI. Photos are stretched to fill their slot;
aspect ratio is not preserved.
"""
import cv2
import logging
import numpy as np
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from error_handlers import LayoutError, PhotoDecodeError, UnknownLayoutError

logger = logging.getLogger(__name__)

# BGR
BACKGROUND_COLOR = (255, 255, 255)
BORDER_COLOR = (204, 204, 204)   # #ccc
GUIDE_COLOR = (221, 221, 221)    # #ddd
BORDER_WIDTH = 2
GUIDE_WIDTH = 1
GUIDE_DASH = 5
GUIDE_GAP = 5


@dataclass(frozen=True)
class LayoutSpec:
    """Page and slot geometry for one layout variant."""
    name: str
    page_width: int
    page_height: int
    slot_width: int
    slot_height: int
    margin: int

    def __post_init__(self):
        if min(self.page_width, self.page_height, self.slot_width, self.slot_height) <= 0:
            raise LayoutError(
                f"Layout {self.name} has non-positive dimensions",
                error_code="INVALID_LAYOUT",
                details={'layout': self.name},
            )
        if self.margin < 0:
            raise LayoutError(
                f"Layout {self.name} has a negative margin",
                error_code="INVALID_LAYOUT",
                details={'layout': self.name},
            )


# A4 = 2480 x 3508 at 300 DPI
LAYOUT_VARIANTS: Dict[str, LayoutSpec] = {
    # 35mm x 45mm
    'passport': LayoutSpec('passport', 2480, 3508, 413, 531, 60),
    # 25mm x 35mm
    'id': LayoutSpec('id', 2480, 3508, 295, 413, 60),
}

DEFAULT_VARIANT = 'passport'


def get_layout_spec(variant: Union[str, LayoutSpec, None]) -> LayoutSpec:
    """Resolve a variant name (or pass a LayoutSpec through)."""
    if variant is None:
        return LAYOUT_VARIANTS[DEFAULT_VARIANT]
    if isinstance(variant, LayoutSpec):
        return variant
    try:
        return LAYOUT_VARIANTS[variant]
    except KeyError:
        raise UnknownLayoutError(variant, available=LAYOUT_VARIANTS.keys())


@dataclass(frozen=True)
class LayoutPage:
    """Grid geometry derived from a LayoutSpec."""
    spec: LayoutSpec
    cols: int
    rows: int
    start_x: float
    start_y: float
    slots: Tuple[Tuple[float, float], ...]
    vertical_guides: Tuple[float, ...]
    horizontal_guides: Tuple[float, ...]

    @property
    def capacity(self) -> int:
        return self.cols * self.rows

    @property
    def width(self) -> int:
        return self.spec.page_width

    @property
    def height(self) -> int:
        return self.spec.page_height

    def to_dict(self) -> Dict:
        return {
            'variant': self.spec.name,
            'width': self.width,
            'height': self.height,
            'slot_width': self.spec.slot_width,
            'slot_height': self.spec.slot_height,
            'margin': self.spec.margin,
            'cols': self.cols,
            'rows': self.rows,
            'capacity': self.capacity,
        }


def compute_page(spec: LayoutSpec) -> LayoutPage:
    """
    Lay out the slot grid.

    The cols x rows block (internal margins, no trailing margin) is centered
    on the page. Cutting guides sit halfway between neighbouring slots.
    """
    pitch_x = spec.slot_width + spec.margin
    pitch_y = spec.slot_height + spec.margin
    cols = spec.page_width // pitch_x
    rows = spec.page_height // pitch_y

    block_w = cols * spec.slot_width + max(cols - 1, 0) * spec.margin
    block_h = rows * spec.slot_height + max(rows - 1, 0) * spec.margin
    start_x = (spec.page_width - block_w) / 2
    start_y = (spec.page_height - block_h) / 2

    # Row-major slot order
    slots = tuple(
        (start_x + col * pitch_x, start_y + row * pitch_y)
        for row in range(rows)
        for col in range(cols)
    )
    vertical = tuple(start_x + i * pitch_x - spec.margin / 2 for i in range(1, cols))
    horizontal = tuple(start_y + i * pitch_y - spec.margin / 2 for i in range(1, rows))

    return LayoutPage(
        spec=spec,
        cols=cols,
        rows=rows,
        start_x=start_x,
        start_y=start_y,
        slots=slots,
        vertical_guides=vertical,
        horizontal_guides=horizontal,
    )


@dataclass(frozen=True)
class LayoutArtifact:
    """Rendered page, PNG-encoded. Read-only input for download and print."""
    png: bytes
    width: int
    height: int
    variant: str
    photo_ids: Tuple[int, ...]
    created_at: datetime = field(default_factory=datetime.now)

    def to_image(self) -> np.ndarray:
        """Decode to a BGR array."""
        return cv2.imdecode(np.frombuffer(self.png, dtype=np.uint8), cv2.IMREAD_COLOR)

    def to_dict(self) -> Dict:
        return {
            'variant': self.variant,
            'width': self.width,
            'height': self.height,
            'photo_ids': list(self.photo_ids),
            'size_bytes': len(self.png),
            'created_at': self.created_at.isoformat(),
        }


@dataclass
class LayoutResult:
    """Result of a layout generation."""
    success: bool
    artifact: Optional[LayoutArtifact] = None
    page: Optional[LayoutPage] = None
    photos_used: int = 0
    blank_slots: int = 0
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """Nothing was rendered."""
        return self.artifact is None

    def to_dict(self) -> Dict:
        result = {
            'success': self.success,
            'photos_used': self.photos_used,
            'blank_slots': self.blank_slots,
            'error': self.error,
        }
        if self.page:
            result['page'] = self.page.to_dict()
        if self.artifact:
            result['artifact'] = self.artifact.to_dict()
        return result


def _draw_dashed_line(canvas: np.ndarray, start: Tuple[int, int], end: Tuple[int, int]):
    """Axis-aligned dashed line, GUIDE_DASH on / GUIDE_GAP off."""
    (x0, y0), (x1, y1) = start, end
    length = max(abs(x1 - x0), abs(y1 - y0))
    if length == 0:
        return
    dx = (x1 - x0) / length
    dy = (y1 - y0) / length

    pos = 0
    while pos < length:
        seg_end = min(pos + GUIDE_DASH, length)
        p0 = (int(round(x0 + dx * pos)), int(round(y0 + dy * pos)))
        p1 = (int(round(x0 + dx * seg_end)), int(round(y0 + dy * seg_end)))
        cv2.line(canvas, p0, p1, GUIDE_COLOR, GUIDE_WIDTH)
        pos += GUIDE_DASH + GUIDE_GAP


def _decode_photo(photo) -> np.ndarray:
    buffer = np.frombuffer(photo.image, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
    if image is None:
        raise PhotoDecodeError(photo.id)
    return image


def render_page(page: LayoutPage, photos: Sequence) -> np.ndarray:
    """
    Draw the page: white background, stretched photos with borders,
    then cutting guides over the whole page.

    Args:
        page: Grid geometry
        photos: Photos to place, at most page.capacity

    Returns:
        numpy.ndarray: BGR page image
    """
    spec = page.spec
    canvas = np.full((spec.page_height, spec.page_width, 3), BACKGROUND_COLOR, dtype=np.uint8)

    for photo, (sx, sy) in zip(photos, page.slots):
        x, y = int(round(sx)), int(round(sy))
        image = _decode_photo(photo)
        stretched = cv2.resize(image, (spec.slot_width, spec.slot_height), interpolation=cv2.INTER_AREA)
        canvas[y:y + spec.slot_height, x:x + spec.slot_width] = stretched
        cv2.rectangle(
            canvas,
            (x, y),
            (x + spec.slot_width - 1, y + spec.slot_height - 1),
            BORDER_COLOR,
            BORDER_WIDTH,
        )

    for gx in page.vertical_guides:
        x = int(round(gx))
        _draw_dashed_line(canvas, (x, 0), (x, spec.page_height))
    for gy in page.horizontal_guides:
        y = int(round(gy))
        _draw_dashed_line(canvas, (0, y), (spec.page_width, y))

    return canvas


def generate_layout(photos: Sequence, variant: Union[str, LayoutSpec, None] = None) -> LayoutResult:
    """
    Render a printable page from photos ordered best first.

    Photos beyond the page capacity are dropped; missing photos leave blank
    slots. With no photos nothing is rendered and the result says so.

    Raises:
        UnknownLayoutError: If the variant name is not known
        PhotoDecodeError: If a photo's bytes cannot be decoded
    """
    spec = get_layout_spec(variant)
    page = compute_page(spec)

    if not photos:
        logger.info("Layout skipped: no photos")
        return LayoutResult(
            success=False,
            page=page,
            blank_slots=page.capacity,
            error="Capture some photos to generate a layout",
        )

    start = time.time()
    used = list(photos)[:page.capacity]
    if len(photos) > page.capacity:
        logger.debug(f"Layout holds {page.capacity} photos, dropping {len(photos) - page.capacity}")

    canvas = render_page(page, used)
    ok, buffer = cv2.imencode('.png', canvas)
    if not ok:
        raise LayoutError(
            "Failed to encode layout page",
            error_code="LAYOUT_ENCODE_FAILED",
            details={'variant': spec.name},
        )

    artifact = LayoutArtifact(
        png=buffer.tobytes(),
        width=spec.page_width,
        height=spec.page_height,
        variant=spec.name,
        photo_ids=tuple(p.id for p in used),
    )

    logger.info(
        f"Layout '{spec.name}' generated: {len(used)}/{page.capacity} slots "
        f"in {(time.time() - start) * 1000:.0f}ms"
    )
    return LayoutResult(
        success=True,
        artifact=artifact,
        page=page,
        photos_used=len(used),
        blank_slots=page.capacity - len(used),
    )


def available_variants() -> List[str]:
    return sorted(LAYOUT_VARIANTS)
