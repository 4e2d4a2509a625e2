"""
Composite module for giftprint.

This module handles:
- Preparing the layout base at the requested resolution
- Turning slot assignments into positioned layers
- Flattening layers onto the base in z-order
- Encoding the final artwork
"""

import base64
import io
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from PIL import Image
from loguru import logger

from giftprint.config import AppConfig, get_config
from giftprint.errors import SlotSourceUnavailable
from giftprint.layout import Layout, PrintSlot, SlotPosition, sort_slots_for_painting, validate_slots
from giftprint.render import (
    CompositionWorkspace,
    SlotSource,
    fit_source,
    load_base_image,
    load_slot_source,
    normalize_assignments,
    prepare_base,
    rotate_region,
)


class CompositionResult:
    """Flattened artwork produced by one composition call."""

    mime_type = 'image/png'

    def __init__(self, buffer: bytes, width: int, height: int, skipped_slots: List[str] = None):
        self.buffer = buffer
        self.width = width
        self.height = height
        self.skipped_slots = skipped_slots or []

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def save(self, output_path: Union[str, Path]) -> Path:
        """Write the encoded artwork to disk."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.buffer)
        logger.info(f"Saved composite image: {path} ({len(self.buffer):,} bytes)")
        return path

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.buffer).decode('ascii')
        return f"data:{self.mime_type};base64,{encoded}"

    def to_image(self) -> Image.Image:
        """Decode the buffer back into a Pillow image."""
        return Image.open(io.BytesIO(self.buffer))

    def __repr__(self) -> str:
        return (f"CompositionResult({self.width}x{self.height}, {len(self.buffer)} bytes, "
                f"skipped={self.skipped_slots})")


class CompositeLayer:
    """A processed slot image ready to be painted at a canvas offset."""

    def __init__(self, slot_id: str, image: Image.Image, position: SlotPosition, z_index: int = 0):
        self.slot_id = slot_id
        self.image = image
        self.position = position
        self.z_index = z_index


class CompositionEngine:
    """Renders a layout and its slot assignments into one flattened image.

    The engine keeps no per-call state, so one instance can serve
    concurrent calls from several threads.
    """

    def __init__(self, config: AppConfig = None):
        self.config = config or get_config()

    def compose(self,
                base_image_path: Union[str, Path],
                target_width: int,
                target_height: int,
                slots: Sequence[Union[PrintSlot, Dict[str, Any]]],
                assignments: Any = None) -> CompositionResult:
        """
        Render the base image and assigned slot sources at the target size.

        Args:
            base_image_path: Layout base artwork
            target_width: Output width in pixels
            target_height: Output height in pixels
            slots: Layout print slots (raw mappings are validated first)
            assignments: slot_id -> path or bytes, or SlotAssignment items

        Returns:
            CompositionResult sized exactly target_width x target_height

        Raises:
            BaseImageNotFound: when the base image is missing or unreadable
            BaseImageDecodeError: when the base image cannot be decoded
            InvalidSlotGeometry: when raw slot mappings are malformed
        """
        self._check_target_size(target_width, target_height)
        canvas_size = (target_width, target_height)

        ordered = sort_slots_for_painting(validate_slots(list(slots or [])))
        sources = normalize_assignments(assignments)

        unknown = sorted(set(sources) - {slot.id for slot in ordered})
        if unknown:
            logger.warning(f"Ignoring assignments for unknown slots: {', '.join(unknown)}")

        skipped: List[str] = []

        with CompositionWorkspace(self.config.TEMP_FOLDER) as workspace:
            base = load_base_image(workspace, base_image_path)
            canvas = prepare_base(base, canvas_size)

            layers = []
            for slot in ordered:
                source = sources.get(slot.id)
                if source is None:
                    logger.debug(f"No source for slot {slot.id}, base shows through")
                    continue

                try:
                    layers.append(self.build_layer(workspace, slot, source, canvas_size))
                except SlotSourceUnavailable as e:
                    logger.warning(f"Skipping slot {slot.id}: {e.message}")
                    skipped.append(slot.id)

            canvas = self.flatten(canvas, layers)
            buffer = self.encode(canvas)

        logger.info(f"Composed {len(layers)}/{len(ordered)} slots onto {target_width}x{target_height} canvas "
                    f"({len(buffer):,} bytes, skipped: {skipped or 'none'})")

        return CompositionResult(buffer, target_width, target_height, skipped)

    def compose_layout(self,
                       layout: Layout,
                       assignments: Any = None,
                       target_size: Optional[Tuple[int, int]] = None) -> CompositionResult:
        """Render a layout at its native size or at target_size."""
        width, height = target_size or layout.size
        return self.compose(layout.base_image, width, height, layout.slots, assignments)

    def build_layer(self,
                    workspace: CompositionWorkspace,
                    slot: PrintSlot,
                    source: SlotSource,
                    canvas_size: Tuple[int, int]) -> CompositeLayer:
        """Load, fit and rotate one slot source."""
        position = SlotPosition.from_slot(slot, canvas_size)
        if position.is_empty:
            raise SlotSourceUnavailable(
                slot.id, source,
                f"slot collapses to {position.width}x{position.height}px at {canvas_size[0]}x{canvas_size[1]}"
            )

        image = load_slot_source(workspace, slot.id, source)
        fitted = fit_source(image, position.width, position.height, slot.fit)
        rotated = rotate_region(fitted, slot.rotation)

        logger.debug(f"Slot {slot.id}: {image.size} -> {slot.fit} {position} rotation={slot.rotation}")
        return CompositeLayer(slot.id, rotated, position, slot.z_index)

    def flatten(self, canvas: Image.Image, layers: List[CompositeLayer]) -> Image.Image:
        """Alpha-composite layers onto the canvas in the given order."""
        if canvas.mode != 'RGBA':
            canvas = canvas.convert('RGBA')

        for layer in layers:
            # Layers reaching past the canvas edge are clipped
            canvas.alpha_composite(layer.image, dest=(layer.position.x, layer.position.y))

        return canvas

    def encode(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format='PNG', compress_level=self.config.PNG_COMPRESS_LEVEL)
        return buffer.getvalue()

    @staticmethod
    def _check_target_size(target_width: int, target_height: int) -> None:
        for name, value in (('target_width', target_width), ('target_height', target_height)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


def create_composition_engine(config: AppConfig = None) -> CompositionEngine:
    """Factory function to create a CompositionEngine instance."""
    return CompositionEngine(config)
