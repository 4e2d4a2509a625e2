"""
Layout model for giftprint.

This module handles:
- Declaring print slots as percentage rectangles on a base artwork
- Validating slot geometry when a layout is authored
- Converting slot percentages to pixel positions on a target canvas
- Loading the layout catalog from YAML
"""

import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from giftprint.config import load_yaml_config
from giftprint.errors import InvalidSlotGeometry


FIT_MODES = ('cover', 'contain')

# Optional keys that fall back to their defaults when sent as null
_NULLABLE_FIELDS = ('fit', 'rotation', 'zIndex', 'z_index')


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves rounding up."""
    return int(math.floor(value + 0.5))


class PrintSlot(BaseModel):
    """One customizable rectangle on a layout, in percent of the canvas."""

    model_config = ConfigDict(frozen=True, strict=True, populate_by_name=True, extra='ignore')

    id: str = Field(min_length=1)
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)
    width: float = Field(gt=0, le=100)
    height: float = Field(gt=0, le=100)
    fit: Literal['cover', 'contain'] = 'cover'
    rotation: float = Field(default=0.0, allow_inf_nan=False)
    z_index: int = Field(default=0, alias='zIndex')


class SlotPosition:
    """Represents a slot's position and size in pixels on a canvas."""

    def __init__(self, x: int, y: int, width: int, height: int):
        self.x = x
        self.y = y
        self.width = width
        self.height = height

    @classmethod
    def from_slot(cls, slot: PrintSlot, canvas_size: Tuple[int, int]) -> 'SlotPosition':
        """Convert a slot's percentages to pixels on the given canvas.

        Each component is rounded on its own, so adjacent slots may
        overlap or leave a 1px seam at some resolutions.
        """
        canvas_width, canvas_height = canvas_size
        return cls(
            round_half_up(slot.x / 100 * canvas_width),
            round_half_up(slot.y / 100 * canvas_height),
            round_half_up(slot.width / 100 * canvas_width),
            round_half_up(slot.height / 100 * canvas_height),
        )

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def __eq__(self, other) -> bool:
        if not isinstance(other, SlotPosition):
            return NotImplemented
        return (self.x, self.y, self.width, self.height) == (other.x, other.y, other.width, other.height)

    def __repr__(self) -> str:
        return f"SlotPosition({self.x}, {self.y}, {self.width}, {self.height})"


def _slot_label(raw: Any, index: int) -> str:
    if isinstance(raw, dict) and isinstance(raw.get('id'), str) and raw['id']:
        return raw['id']
    return f"#{index}"


def _parse_slot(raw: Any, index: int) -> PrintSlot:
    if isinstance(raw, PrintSlot):
        return raw
    if not isinstance(raw, dict):
        raise InvalidSlotGeometry(f"Slot #{index} must be a mapping", slot_id=None, value=raw)

    data = {k: v for k, v in raw.items() if not (k in _NULLABLE_FIELDS and v is None)}
    try:
        return PrintSlot.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = str(error['loc'][0]) if error['loc'] else None
        label = _slot_label(raw, index)
        raise InvalidSlotGeometry(
            f"Slot '{label}': invalid '{field}': {error['msg']}",
            slot_id=label,
            field=field,
            value=error.get('input'),
        ) from e


def validate_slots(slots: Iterable[Any]) -> List[PrintSlot]:
    """
    Validate slot definitions and resolve their defaults.

    Accepts PrintSlot instances or raw mappings (as stored in layout JSON).
    An empty list is valid and describes a non-customizable layout.

    Raises:
        InvalidSlotGeometry: on bad percentages, fit modes or duplicate ids
    """
    if not isinstance(slots, (list, tuple)):
        raise InvalidSlotGeometry("Slots must be a list (it may be empty)", value=type(slots).__name__)

    parsed = [_parse_slot(raw, i) for i, raw in enumerate(slots)]

    seen = set()
    for slot in parsed:
        if slot.id in seen:
            raise InvalidSlotGeometry(f"Duplicate slot id: '{slot.id}'", slot_id=slot.id, field='id', value=slot.id)
        seen.add(slot.id)

    return parsed


def sort_slots_for_painting(slots: List[PrintSlot]) -> List[PrintSlot]:
    """Order slots by z-index, lowest first; ties keep declaration order."""
    return sorted(slots, key=lambda s: s.z_index)


class Layout(BaseModel):
    """A selectable base design with its print slots."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    base_image: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    slots: List[PrintSlot] = []

    @field_validator('slots', mode='before')
    @classmethod
    def _validate_slots(cls, value):
        if value is None:
            return []
        return validate_slots(value)

    @property
    def base_image_path(self) -> Path:
        return Path(self.base_image)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def get_slot(self, slot_id: str) -> Optional[PrintSlot]:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], assets_dir: Union[str, Path, None] = None) -> 'Layout':
        """Build a layout from a catalog entry, resolving relative image paths."""
        data = dict(data)
        base_image = data.get('base_image') or data.get('image')
        if base_image and assets_dir is not None and not Path(base_image).is_absolute():
            base_image = str(Path(assets_dir) / base_image)
        data['base_image'] = base_image
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def load_layouts(file_path: str, assets_dir: Union[str, Path, None] = None) -> Dict[str, Layout]:
    """Load the layout catalog from YAML, keyed by layout id"""
    config_data = load_yaml_config(file_path)
    layouts = {}

    for item in config_data.get("layouts", []):
        try:
            layout = Layout.from_dict(item, assets_dir)
        except (InvalidSlotGeometry, ValidationError) as e:
            logger.error(f"Error loading layout {item.get('id', 'unknown')}: {e}")
            continue

        if layout.id in layouts:
            logger.warning(f"Duplicate layout id {layout.id}, keeping the first definition")
            continue
        layouts[layout.id] = layout

    logger.info(f"Loaded {len(layouts)} layout configurations")
    return layouts
