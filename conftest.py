"""
Pytest configuration for test discovery and imports.

The project installs flat modules from src/; put src/ on sys.path so the
tests can import them from a plain checkout.
"""

import os
import sys

ROOT_DIR = os.path.dirname(__file__)
SRC_DIR = os.path.join(ROOT_DIR, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)
