"""
Upload validation for giftprint.

Every customer photo goes through ImageValidator before it can be assigned
to a print slot. Rule violations are returned as a ValidationResult; only
I/O failures (missing or unreadable file) raise.
"""

import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from PIL import Image
from loguru import logger

from giftprint.config import AppConfig, get_config


BYTES_PER_MB = 1024 * 1024

# Bounds decode/composite cost regardless of per-product limits
MAX_MEGAPIXELS = 20.0

# File-level failures propagate; anything else while parsing a header means
# the dimensions cannot be determined
_UNREADABLE_FILE = (FileNotFoundError, PermissionError, IsADirectoryError)
_HEADER_ERRORS = (OSError, SyntaxError, ValueError, EOFError)


class ValidationCode(str, Enum):
    IMAGE_TOO_LARGE = 'image_too_large'
    IMAGE_TOO_SMALL = 'image_too_small'
    RESOLUTION_EXCEEDED = 'resolution_exceeded'
    DIMENSIONS_UNKNOWN = 'dimensions_unknown'
    INVALID_FORMAT = 'invalid_format'


@dataclass
class ValidationResult:
    """Outcome of validating one image."""
    valid: bool
    error: Optional[str] = None
    code: Optional[ValidationCode] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def accept(cls, **details) -> 'ValidationResult':
        return cls(valid=True, details=details)

    @classmethod
    def reject(cls, code: ValidationCode, error: str, **details) -> 'ValidationResult':
        return cls(valid=False, error=error, code=code, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'error': self.error,
            'code': self.code.value if self.code else None,
            'details': self.details
        }


class _ResolutionBomb(Exception):
    pass


class ImageValidator:
    """Gatekeeper for customer-supplied images."""

    def __init__(self, config: AppConfig = None):
        self.config = config or get_config()

    def validate(self,
                 image_path: Union[str, Path],
                 max_size_mb: Optional[float] = None,
                 min_width: Optional[int] = None,
                 min_height: Optional[int] = None) -> ValidationResult:
        """
        Check file size, readable dimensions, minimum size and megapixels.

        Raises:
            OSError: when the file is missing or cannot be read
        """
        if max_size_mb is None:
            max_size_mb = self.config.MAX_UPLOAD_SIZE_MB

        path = Path(image_path)
        size_mb = path.stat().st_size / BYTES_PER_MB

        if size_mb > max_size_mb:
            return ValidationResult.reject(
                ValidationCode.IMAGE_TOO_LARGE,
                f"Image too large: {size_mb:.2f}MB (maximum: {max_size_mb}MB)",
                size_mb=round(size_mb, 2), limit_mb=max_size_mb
            )

        try:
            dimensions = self._read_dimensions(path)
        except _ResolutionBomb as e:
            return ValidationResult.reject(
                ValidationCode.RESOLUTION_EXCEEDED,
                f"Resolution too high: {e} (maximum: {MAX_MEGAPIXELS:g}MP)",
                limit_megapixels=MAX_MEGAPIXELS
            )

        if dimensions is None:
            return ValidationResult.reject(
                ValidationCode.DIMENSIONS_UNKNOWN,
                "Could not determine image dimensions"
            )

        width, height = dimensions

        if min_width and width < min_width:
            return ValidationResult.reject(
                ValidationCode.IMAGE_TOO_SMALL,
                f"Width too small: {width}px (minimum: {min_width}px)",
                width=width, min_width=min_width
            )

        if min_height and height < min_height:
            return ValidationResult.reject(
                ValidationCode.IMAGE_TOO_SMALL,
                f"Height too small: {height}px (minimum: {min_height}px)",
                height=height, min_height=min_height
            )

        megapixels = width * height / 1_000_000
        if megapixels > MAX_MEGAPIXELS:
            return ValidationResult.reject(
                ValidationCode.RESOLUTION_EXCEEDED,
                f"Resolution too high: {megapixels:.1f}MP (maximum: {MAX_MEGAPIXELS:g}MP)",
                megapixels=round(megapixels, 1), limit_megapixels=MAX_MEGAPIXELS
            )

        return ValidationResult.accept(width=width, height=height,
                                       size_mb=round(size_mb, 2), megapixels=round(megapixels, 1))

    def validate_upload(self,
                        filename: str,
                        data: bytes,
                        max_size_mb: Optional[float] = None,
                        min_width: Optional[int] = None,
                        min_height: Optional[int] = None) -> ValidationResult:
        """Validate an in-memory upload, checking its extension first."""
        extension = Path(filename or '').suffix.lower()
        allowed = [ext.lower() for ext in self.config.ALLOWED_EXTENSIONS]
        if extension not in allowed:
            return ValidationResult.reject(
                ValidationCode.INVALID_FORMAT,
                f"Invalid image format: {filename}",
                extension=extension, allowed=allowed
            )

        temp_root = self.config.TEMP_FOLDER
        if temp_root:
            Path(temp_root).mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix='giftprint-upload-', dir=temp_root) as staging:
            staged = Path(staging) / f"upload{extension}"
            staged.write_bytes(data)
            result = self.validate(staged, max_size_mb, min_width, min_height)

        if not result.valid:
            logger.info(f"Rejected upload {filename}: {result.error}")
        return result

    @staticmethod
    def _read_dimensions(path: Path) -> Optional[Tuple[int, int]]:
        """Read the header dimensions without decoding pixel data."""
        try:
            with Image.open(path) as image:
                width, height = image.size
        except Image.DecompressionBombError as e:
            raise _ResolutionBomb(str(e)) from e
        except _UNREADABLE_FILE:
            raise
        except _HEADER_ERRORS as e:
            logger.debug(f"Unreadable image header {path}: {e}")
            return None

        if not width or not height:
            return None
        return (width, height)
