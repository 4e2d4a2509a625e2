#!/usr/bin/env python3
"""
giftprint - Development Runner
Run this script to start the development server
"""

import os
import sys
from pathlib import Path

from loguru import logger

# Set environment defaults
os.environ.setdefault('FLASK_APP', 'giftprint')
os.environ.setdefault('FLASK_ENV', 'development')

from giftprint import create_app


def main():
    """Main entry point"""
    app = create_app()

    logger.info(f"Environment: {app.config.get('FLASK_ENV', 'unknown')}")
    logger.info(f"Debug mode: {app.config.get('DEBUG', False)}")

    layouts_file = Path(app.config['LAYOUTS_FILE'])
    if not layouts_file.exists():
        logger.warning(f"Layouts file missing: {layouts_file}, no layouts will be offered")

    # Base artwork is not shipped with the repository
    workflow = app.extensions['giftprint.workflow']
    missing = [layout.id for layout in workflow.layouts.values() if not layout.base_image_path.is_file()]
    if missing:
        logger.warning(f"Base images missing for layouts: {', '.join(missing)}")

    app.run(
        host=os.getenv('HOST', '127.0.0.1'),
        port=int(os.getenv('PORT', '5000')),
        debug=app.config.get('DEBUG', True),
        use_reloader=True,
        threaded=True
    )


if __name__ == '__main__':
    sys.exit(main())
