"""
GARCH-EVT Risk Engine - Main Analysis
Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from garch_evt.cli import main

if __name__ == "__main__":
    sys.exit(main())
