"""
Main entry point for running the package as a module.

Usage:
    python -m imagebatch scan textures/
    python -m imagebatch batch textures/ --prompt "..."
    python -m imagebatch review textures_processed/
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
