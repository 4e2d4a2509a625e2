"""
Render preparation module for giftprint.

This module handles:
- Scoped per-call workspaces for staging uploads and tracking open images
- Resolving slot sources (file paths or in-memory buffers)
- Loading the layout base image
- Fitting source images into slots (cover / contain) and rotating them
"""

import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from PIL import Image, ImageOps
from loguru import logger

from giftprint.errors import BaseImageDecodeError, BaseImageNotFound, SlotSourceUnavailable
from giftprint.layout import round_half_up


SlotSource = Union[str, os.PathLike, bytes, bytearray, memoryview]

TRANSPARENT = (0, 0, 0, 0)

# Errors Pillow raises for unreadable, truncated or hostile image data
_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


class SlotAssignment:
    """Associates one slot id with a source image for a single composition call."""

    def __init__(self, slot_id: str, source: SlotSource):
        self.slot_id = slot_id
        self.source = source

    @property
    def is_buffer(self) -> bool:
        return isinstance(self.source, (bytes, bytearray, memoryview))

    def __repr__(self) -> str:
        kind = 'buffer' if self.is_buffer else str(self.source)
        return f"SlotAssignment({self.slot_id!r}, {kind})"


def normalize_assignments(assignments: Any) -> Dict[str, SlotSource]:
    """
    Collapse the accepted assignment shapes into a slot_id -> source dict.

    Accepts a mapping, an iterable of SlotAssignment, or (slot_id, source)
    pairs. A slot assigned twice keeps the last source.
    """
    if assignments is None:
        return {}

    if isinstance(assignments, Mapping):
        pairs: Iterable[Tuple[str, SlotSource]] = assignments.items()
    else:
        pairs = (
            (a.slot_id, a.source) if isinstance(a, SlotAssignment) else tuple(a)
            for a in assignments
        )

    sources: Dict[str, SlotSource] = {}
    for slot_id, source in pairs:
        if slot_id in sources:
            logger.warning(f"Slot {slot_id} assigned more than once, using the last source")
        sources[slot_id] = source
    return sources


class CompositionWorkspace:
    """
    Private scratch space owned by one composition call.

    Creates its own temporary directory, stages in-memory sources there and
    tracks every image it opens. Leaving the context closes the images and
    removes the directory, whether the call succeeded or failed.
    """

    def __init__(self, temp_root: Optional[str] = None):
        self.temp_root = temp_root
        self.path: Optional[Path] = None
        self._tempdir: Optional[tempfile.TemporaryDirectory] = None
        self._images: List[Image.Image] = []
        self._staged = 0

    def __enter__(self) -> 'CompositionWorkspace':
        if self.temp_root:
            Path(self.temp_root).mkdir(parents=True, exist_ok=True)
        self._tempdir = tempfile.TemporaryDirectory(prefix='giftprint-', dir=self.temp_root)
        self.path = Path(self._tempdir.name)
        logger.debug(f"Opened composition workspace {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        for image in self._images:
            image.close()
        self._images.clear()

        if self._tempdir is not None:
            self._tempdir.cleanup()
            logger.debug(f"Removed composition workspace {self.path}")
            self._tempdir = None

    def track(self, image: Image.Image) -> Image.Image:
        """Register an image to be closed when the workspace closes."""
        self._images.append(image)
        return image

    def stage_bytes(self, data: Union[bytes, bytearray, memoryview], label: str = 'source') -> Path:
        """Write an in-memory source into the workspace and return its path."""
        if self.path is None:
            raise RuntimeError("Workspace is not open")
        self._staged += 1
        staged_path = self.path / f"{self._staged:03d}_{label}.img"
        staged_path.write_bytes(bytes(data))
        return staged_path

    def open_image(self, path: Union[str, Path]) -> Image.Image:
        """Open and fully decode an image, tracking it for release."""
        image = self.track(Image.open(path))
        image.load()
        return image


def load_base_image(workspace: CompositionWorkspace, base_image_path: Union[str, Path]) -> Image.Image:
    """Load the layout base image as RGBA."""
    path = Path(base_image_path)
    if not path.is_file():
        raise BaseImageNotFound(str(base_image_path), "file does not exist")

    try:
        image = workspace.open_image(path)
    except PermissionError as e:
        raise BaseImageNotFound(str(base_image_path), f"not readable: {e}") from e
    except _DECODE_ERRORS as e:
        raise BaseImageDecodeError(str(base_image_path), f"cannot decode: {e}") from e

    logger.debug(f"Loaded base image: {path} ({image.size}, {image.mode})")
    return workspace.track(image.convert('RGBA'))


def load_slot_source(workspace: CompositionWorkspace, slot_id: str, source: SlotSource) -> Image.Image:
    """
    Resolve a slot's source into an upright RGBA image.

    Raises:
        SlotSourceUnavailable: when the source is missing, empty or undecodable
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        if len(source) == 0:
            raise SlotSourceUnavailable(slot_id, source, "empty buffer")
        path = workspace.stage_bytes(source, label='slot')
    else:
        path = Path(source)
        if not path.is_file():
            raise SlotSourceUnavailable(slot_id, str(source), "file does not exist")

    try:
        image = workspace.open_image(path)
        # Phone photos carry their orientation in EXIF
        upright = workspace.track(ImageOps.exif_transpose(image))
    except _DECODE_ERRORS as e:
        raise SlotSourceUnavailable(slot_id, str(path), f"cannot decode: {e}") from e

    if upright.width == 0 or upright.height == 0:
        raise SlotSourceUnavailable(slot_id, str(path), f"degenerate dimensions {upright.size}")

    logger.debug(f"Loaded source for slot {slot_id}: {upright.size}, {upright.mode}")
    return workspace.track(upright.convert('RGBA'))


def prepare_base(image: Image.Image, canvas_size: Tuple[int, int]) -> Image.Image:
    """Scale the base to fill the canvas and crop the excess, centered."""
    if image.size == canvas_size:
        return image.copy()
    return ImageOps.fit(image, canvas_size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def fit_cover(image: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """
    Scale to fill the target box and crop the centered excess.

    The result is always exactly target_width x target_height with no
    uncovered pixels.
    """
    orig_width, orig_height = image.size
    scale = max(target_width / orig_width, target_height / orig_height)

    new_width = max(target_width, math.ceil(orig_width * scale))
    new_height = max(target_height, math.ceil(orig_height * scale))
    resized = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

    offset_x = max(0, (new_width - target_width) // 2)
    offset_y = max(0, (new_height - target_height) // 2)

    return resized.crop((offset_x, offset_y, offset_x + target_width, offset_y + target_height))


def fit_contain(image: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """
    Scale to fit inside the target box, centered on a transparent canvas.

    Nothing of the source is cropped.
    """
    orig_width, orig_height = image.size
    scale = min(target_width / orig_width, target_height / orig_height)

    new_width = min(target_width, max(1, round_half_up(orig_width * scale)))
    new_height = min(target_height, max(1, round_half_up(orig_height * scale)))
    resized = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

    padded = Image.new('RGBA', (target_width, target_height), TRANSPARENT)
    padded.paste(resized, ((target_width - new_width) // 2, (target_height - new_height) // 2))
    return padded


def rotate_region(image: Image.Image, degrees: float) -> Image.Image:
    """
    Rotate content clockwise about the region center.

    The region keeps its size; content pushed outside it is clipped and the
    exposed corners are transparent.
    """
    if degrees % 360 == 0:
        return image
    return image.rotate(
        -degrees,
        resample=Image.Resampling.BICUBIC,
        expand=False,
        fillcolor=TRANSPARENT,
    )


def fit_source(image: Image.Image, target_width: int, target_height: int, fit: str) -> Image.Image:
    """Apply a slot fit mode to a source image."""
    if fit == 'contain':
        return fit_contain(image, target_width, target_height)
    return fit_cover(image, target_width, target_height)
