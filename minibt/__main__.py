#!/usr/bin/env python3
"""Allow ``python -m minibt``."""

from __future__ import annotations

import sys

from minibt.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
