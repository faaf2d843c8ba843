#!/usr/bin/env python3
"""Run the id-photo command line from a source checkout."""

import os
import sys

HERE = os.path.dirname(os.path.abspath(__file__))
SRC = os.path.join(HERE, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from photocheck.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
