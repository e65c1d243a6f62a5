"""
Pytest configuration for the PlateRunner API tests.
"""

import sys
from pathlib import Path

# Add the API modules to Python path for test imports
app_path = Path(__file__).parent.parent / "app"
sys.path.insert(0, str(app_path))
sys.path.insert(0, str(Path(__file__).parent))
