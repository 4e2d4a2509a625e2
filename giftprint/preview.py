"""
Preview Generator
Renders a scaled-down composition for quick customer feedback
"""

from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from loguru import logger

from giftprint.composite import CompositionEngine, CompositionResult
from giftprint.config import AppConfig, get_config
from giftprint.layout import Layout, PrintSlot, round_half_up


def preview_dimensions(base_width: int, base_height: int, max_width: int) -> Tuple[int, int]:
    """Scale base dimensions down to max_width, never up."""
    if base_width <= 0 or base_height <= 0:
        raise ValueError(f"Base dimensions must be positive, got {base_width}x{base_height}")
    if max_width <= 0:
        raise ValueError(f"max_width must be positive, got {max_width}")

    scale = min(1, max_width / base_width)
    return (max(1, round_half_up(base_width * scale)), max(1, round_half_up(base_height * scale)))


class PreviewGenerator:
    """Generate low-resolution previews from the same percentage geometry"""

    def __init__(self, engine: CompositionEngine = None, config: AppConfig = None):
        self.config = config or get_config()
        self.engine = engine or CompositionEngine(self.config)

    def preview(self,
                base_image_path: Union[str, Path],
                base_width: int,
                base_height: int,
                slots: Sequence[Union[PrintSlot, Dict[str, Any]]],
                assignments: Any = None,
                max_width: Optional[int] = None) -> bytes:
        """
        Render a preview and return the encoded image.

        Slots are percentages, so they need no rescaling; only the
        canvas shrinks.
        """
        result = self.preview_result(base_image_path, base_width, base_height, slots, assignments, max_width)
        return result.buffer

    def preview_result(self,
                       base_image_path: Union[str, Path],
                       base_width: int,
                       base_height: int,
                       slots: Sequence[Union[PrintSlot, Dict[str, Any]]],
                       assignments: Any = None,
                       max_width: Optional[int] = None) -> CompositionResult:
        """Same as preview() but returns the full CompositionResult."""
        if max_width is None:
            max_width = self.config.PREVIEW_MAX_WIDTH

        preview_width, preview_height = preview_dimensions(base_width, base_height, max_width)
        logger.debug(f"Preview {base_width}x{base_height} -> {preview_width}x{preview_height} (max {max_width})")

        return self.engine.compose(base_image_path, preview_width, preview_height, slots, assignments)

    def preview_layout(self,
                       layout: Layout,
                       assignments: Any = None,
                       max_width: Optional[int] = None) -> CompositionResult:
        return self.preview_result(layout.base_image, layout.width, layout.height, layout.slots,
                                   assignments, max_width)
