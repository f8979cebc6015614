#!/usr/bin/env python3
"""
LXD container and VM lifecycle tool (REST API over the local Unix socket)

- List instances, images and daemon operations
- Start, stop, restart, delete, create and clone instances, either tracked
  asynchronously (default) or blocking with --wait

This script supports running directly from a source checkout. It adds the
local `src/` directory to sys.path before importing the CLI. For regular use,
prefer installing the project and using the `lxdops` console script.
"""

import os
import sys

# Add src/ to path to import modules directly
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SRC_PATH = os.path.join(REPO_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from cli import main

if __name__ == "__main__":
    sys.exit(main())
