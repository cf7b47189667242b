#!/usr/bin/env python3
"""
Hymnal Admin Launcher

Runs the command-line admin tool without installing the package.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from hymnal_admin.cli import main

if __name__ == '__main__':
    sys.exit(main())
