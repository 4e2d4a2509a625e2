"""
Personalization workflow for giftprint.

Ties validation, composition and persistence together for one order item:
uploads are vetted by the ImageValidator before anything is composed, and
composition failures are reported to the customer as a generic artwork error
while the cause is logged for operators.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from werkzeug.utils import secure_filename

from giftprint.composite import CompositionEngine, CompositionResult
from giftprint.config import AppConfig, get_config
from giftprint.errors import (
    ArtworkGenerationError, CompositionError, ImageRejectedError, LayoutNotFoundError
)
from giftprint.layout import Layout
from giftprint.preview import PreviewGenerator
from giftprint.validator import ImageValidator


@dataclass
class Upload:
    """A customer photo destined for one slot."""
    slot_id: str
    filename: str
    data: bytes


@dataclass
class PersonalizationRecord:
    """Summary of a committed personalization."""
    order_id: str
    item_id: str
    layout_id: str
    final_image_path: Path
    width: int
    height: int
    skipped_slots: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order_id': self.order_id,
            'item_id': self.item_id,
            'layout_id': self.layout_id,
            'final_image_path': str(self.final_image_path),
            'width': self.width,
            'height': self.height,
            'skipped_slots': self.skipped_slots
        }


class PersonalizationWorkflow:
    """Validate uploads, compose artwork and store the final file."""

    def __init__(self,
                 layouts: Dict[str, Layout],
                 storage_folder: Optional[str] = None,
                 config: AppConfig = None,
                 engine: CompositionEngine = None,
                 validator: ImageValidator = None):
        self.config = config or get_config()
        self.layouts = layouts
        self.storage_folder = Path(storage_folder or self.config.STORAGE_FOLDER)
        self.engine = engine or CompositionEngine(self.config)
        self.previewer = PreviewGenerator(self.engine, self.config)
        self.validator = validator or ImageValidator(self.config)

    def get_layout(self, layout_id: str) -> Layout:
        layout = self.layouts.get(layout_id)
        if layout is None:
            raise LayoutNotFoundError(layout_id)
        return layout

    def validate_uploads(self, layout: Layout, uploads: Iterable[Upload]) -> Dict[str, bytes]:
        """
        Run every upload through the validator and build slot assignments.

        Raises:
            ImageRejectedError: on the first upload that fails validation
        """
        assignments = {}
        for upload in uploads:
            if layout.get_slot(upload.slot_id) is None:
                logger.warning(f"Layout {layout.id} has no slot {upload.slot_id}, ignoring {upload.filename}")
                continue

            result = self.validator.validate_upload(
                upload.filename,
                upload.data,
                min_width=self.config.MIN_UPLOAD_WIDTH,
                min_height=self.config.MIN_UPLOAD_HEIGHT
            )
            if not result.valid:
                raise ImageRejectedError(result, slot_id=upload.slot_id, filename=upload.filename)

            assignments[upload.slot_id] = upload.data

        return assignments

    def preview(self,
                layout_id: str,
                uploads: Iterable[Upload],
                max_width: Optional[int] = None) -> CompositionResult:
        """Render a low-resolution preview for the customer."""
        layout = self.get_layout(layout_id)
        assignments = self.validate_uploads(layout, uploads)

        try:
            return self.previewer.preview_layout(layout, assignments, max_width)
        except (CompositionError, OSError) as e:
            logger.error(f"Preview failed for layout {layout_id}: {e}")
            raise ArtworkGenerationError('preview', e) from e

    def commit(self,
               order_id: str,
               item_id: str,
               layout_id: str,
               uploads: Iterable[Upload],
               stamp: Optional[int] = None) -> PersonalizationRecord:
        """Compose the full-size artwork for an order item and store it."""
        layout = self.get_layout(layout_id)
        assignments = self.validate_uploads(layout, uploads)

        order_key = secure_filename(str(order_id)) or 'order'
        item_key = secure_filename(str(item_id)) or 'item'
        if stamp is None:
            stamp = int(time.time() * 1000)

        final_path = self.storage_folder / 'orders' / order_key / item_key / f"{order_key}_{item_key}_{stamp}.png"

        try:
            result = self.engine.compose_layout(layout, assignments)
            result.save(final_path)
        except (CompositionError, OSError) as e:
            logger.error(f"Final artwork failed for order {order_id} item {item_id}: {e}")
            raise ArtworkGenerationError('final', e) from e

        if result.skipped_slots:
            logger.warning(f"Order {order_id} item {item_id} stored without slots: {', '.join(result.skipped_slots)}")

        logger.info(f"Committed personalization for order {order_id} item {item_id}: {final_path}")

        return PersonalizationRecord(
            order_id=order_id,
            item_id=item_id,
            layout_id=layout.id,
            final_image_path=final_path,
            width=result.width,
            height=result.height,
            skipped_slots=result.skipped_slots
        )
