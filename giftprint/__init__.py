"""
giftprint - Slot-based artwork composition for made-to-order gifts
Flask application factory
"""

import os
from pathlib import Path
from typing import Any, Dict, Union

from flask import Flask
from loguru import logger
from dotenv import load_dotenv

from .config import AppConfig, load_config, set_config


def create_app(config: Union[str, Dict[str, Any], AppConfig, None] = None):
    """Flask application factory

    ``config`` may be an environment name, a dict of overrides applied on top
    of the loaded settings, or a ready AppConfig.
    """

    # Load environment variables
    load_dotenv()

    app = Flask(__name__)

    app_config = resolve_config(config)
    set_config(app_config)
    app.config.update(app_config.model_dump())

    # Configure logging
    setup_logging(app)

    # Ensure storage directories exist
    setup_directories(app)

    from .layout import load_layouts
    from .workflow import PersonalizationWorkflow

    layouts = load_layouts(app_config.LAYOUTS_FILE, app_config.ASSETS_DIRECTORY)
    app.extensions['giftprint.workflow'] = PersonalizationWorkflow(layouts, config=app_config)

    # Register blueprints
    from . import routes
    app.register_blueprint(routes.bp)

    logger.info(f"giftprint initialized in {app_config.FLASK_ENV} mode with {len(layouts)} layouts")

    return app


def resolve_config(config: Union[str, Dict[str, Any], AppConfig, None]) -> AppConfig:
    if isinstance(config, AppConfig):
        return config
    if isinstance(config, dict):
        base = load_config(os.getenv('FLASK_ENV', 'development'))
        return base.model_copy(update={k: v for k, v in config.items() if k in AppConfig.model_fields})
    return load_config(config or os.getenv('FLASK_ENV', 'development'))


def setup_logging(app):
    """Configure loguru logging"""
    log_level = app.config.get('LOG_LEVEL', 'INFO')
    log_file = app.config.get('LOG_FILE', 'logs/app.log')

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )


def setup_directories(app):
    """Ensure required directories exist"""
    dirs = [
        app.config.get('STORAGE_FOLDER'),
        app.config.get('TEMP_FOLDER'),
    ]

    for dir_path in dirs:
        if dir_path:
            Path(dir_path).mkdir(parents=True, exist_ok=True)
