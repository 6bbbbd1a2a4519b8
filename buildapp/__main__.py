"""
Entry point for running buildapp as a module: python -m buildapp
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
