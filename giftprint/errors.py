"""
Error handling for the giftprint composition service.

Provides specific exception types for the different failure modes of
layout authoring, composition and upload validation, with enough context
for debugging and user feedback.
"""

from os import PathLike
from typing import Dict, List, Any


class GiftPrintError(Exception):
    """Base exception for all giftprint errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ConfigurationError(GiftPrintError):
    """Raised when configuration is invalid or missing."""
    pass


class InvalidSlotGeometry(GiftPrintError):
    """Raised when a layout's print slots are malformed."""

    def __init__(self, message: str, slot_id: str = None, field: str = None, value: Any = None):
        super().__init__(
            message,
            details={
                'slot_id': slot_id,
                'field': field,
                'value': value
            },
            suggestions=[
                "Slot x/y must be percentages between 0 and 100",
                "Slot width/height must be greater than 0 and at most 100",
                "Slot fit must be 'cover' or 'contain'",
                "Every slot needs a unique string id"
            ]
        )


class LayoutNotFoundError(GiftPrintError):
    """Raised when a layout id is not in the catalog."""

    def __init__(self, layout_id: str):
        super().__init__(
            f"Layout not found: {layout_id}",
            details={'layout_id': layout_id},
            suggestions=[
                "Check the layout id against GET /layouts",
                "Verify the layouts file configured in LAYOUTS_FILE"
            ]
        )


class CompositionError(GiftPrintError):
    """Raised when the composition pipeline fails."""
    pass


class BaseImageNotFound(CompositionError):
    """Raised when the layout's base image cannot be read."""

    def __init__(self, image_path: str, reason: str = None):
        message = f"Base image not found: {image_path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            details={
                'image_path': str(image_path),
                'reason': reason
            },
            suggestions=[
                f"Ensure the base image exists at: {image_path}",
                "Verify ASSETS_DIRECTORY in settings.yaml",
                "Re-upload the layout artwork"
            ]
        )


class BaseImageDecodeError(BaseImageNotFound):
    """Raised when the base image exists but cannot be decoded."""
    pass


class SlotSourceUnavailable(CompositionError):
    """Raised when a slot's source image cannot be used.

    Never escapes the engine: the slot is skipped and reported in the result.
    """

    def __init__(self, slot_id: str, source: Any, reason: str):
        super().__init__(
            f"Source for slot '{slot_id}' unavailable: {reason}",
            details={
                'slot_id': slot_id,
                'source': str(source) if isinstance(source, (str, PathLike)) else type(source).__name__,
                'reason': reason
            }
        )
        self.slot_id = slot_id


class ImageRejectedError(GiftPrintError):
    """Raised when an upload fails validation before composition."""

    def __init__(self, validation, slot_id: str = None, filename: str = None):
        allowed = validation.details.get('allowed')
        if allowed:
            format_hint = f"Upload a photo in one of these formats: {', '.join(allowed)}"
        else:
            format_hint = "Upload the photo again in a supported image format"

        super().__init__(
            validation.error or "Image rejected",
            details={
                'slot_id': slot_id,
                'filename': filename,
                'code': validation.code.value if validation.code else None,
                **validation.details
            },
            suggestions=[
                format_hint,
                "Reduce the file size or resolution of the photo",
                "Use a photo that meets the minimum dimensions for this product"
            ]
        )
        self.validation = validation


class ArtworkGenerationError(GiftPrintError):
    """Generic user-facing failure for preview/final artwork generation."""

    def __init__(self, stage: str = 'final', cause: Exception = None):
        super().__init__(
            f"Could not generate {stage} artwork",
            details={
                'stage': stage,
                'cause_type': type(cause).__name__ if cause else None
            },
            suggestions=[
                "Try again in a few moments",
                "Contact support if the problem persists"
            ]
        )
        self.cause = cause
