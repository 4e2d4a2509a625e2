"""
Configuration management for giftprint
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from loguru import logger


class AppConfig(BaseModel):
    """Main application configuration"""

    # Flask settings
    SECRET_KEY: str = Field(default_factory=lambda: os.urandom(24).hex())
    FLASK_ENV: str = "development"
    DEBUG: bool = True

    # Paths
    ASSETS_DIRECTORY: str = "assets"
    LAYOUTS_FILE: str = "config/layouts.yaml"
    STORAGE_FOLDER: str = "storage"
    TEMP_FOLDER: Optional[str] = None  # system temp dir if None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Upload validation
    MAX_UPLOAD_SIZE_MB: float = 20.0
    MIN_UPLOAD_WIDTH: Optional[int] = None
    MIN_UPLOAD_HEIGHT: Optional[int] = None
    ALLOWED_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff"]

    # Composition
    PREVIEW_MAX_WIDTH: int = 800
    PNG_COMPRESS_LEVEL: int = Field(default=9, ge=0, le=9)


def load_yaml_config(file_path: str) -> Dict:
    """Load configuration from YAML file"""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading config file {file_path}: {e}")
        return {}


def load_config(environment: str = "development", config_dir: str = "config") -> AppConfig:
    """Load configuration with environment-specific overrides"""

    # Load base settings
    base_config = load_yaml_config(f"{config_dir}/settings.yaml")

    # Load environment-specific settings
    env_config = load_yaml_config(f"{config_dir}/settings_{environment}.yaml")

    # Merge configurations (env overrides base)
    config_dict = {**base_config, **env_config}

    # Apply environment variable overrides
    env_overrides = {
        'FLASK_ENV': os.getenv('FLASK_ENV', environment),
        'LOG_LEVEL': os.getenv('LOG_LEVEL'),
        'SECRET_KEY': os.getenv('SECRET_KEY'),
        'ASSETS_DIRECTORY': os.getenv('GIFTPRINT_ASSETS_DIR'),
        'STORAGE_FOLDER': os.getenv('GIFTPRINT_STORAGE_DIR'),
        'TEMP_FOLDER': os.getenv('GIFTPRINT_TEMP_DIR'),
    }

    # Only include non-None values
    env_overrides = {k: v for k, v in env_overrides.items() if v is not None}
    config_dict.update(env_overrides)

    # Special handling for boolean DEBUG flag
    if 'FLASK_ENV' in config_dict:
        config_dict['DEBUG'] = config_dict['FLASK_ENV'] == 'development'

    try:
        return AppConfig(**config_dict)
    except ValueError as e:
        logger.error(f"Configuration validation error: {e}")
        # Return default config on validation error
        return AppConfig()


# Global config instance
_config_instance = None

def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config(os.getenv('FLASK_ENV', 'development'))
    return _config_instance


def set_config(config: Optional[AppConfig]) -> None:
    """Replace the global configuration instance (None resets it)"""
    global _config_instance
    _config_instance = config
