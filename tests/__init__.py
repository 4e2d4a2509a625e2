"""
Test suite for giftprint.

Unit tests for the layout model, renderer, validator and workflow, plus
integration tests that drive the Flask blueprint.
"""

import sys
from pathlib import Path

# Make the giftprint package importable without installing it
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
