"""
Main script for the market digest system.

Run `python main.py --help` for the available commands.
"""

import sys

from market_digest.cli import main

if __name__ == "__main__":
    sys.exit(main())
