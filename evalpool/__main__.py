"""
Entry point for running the evalpool package as a module.

Usage:
    python -m evalpool --help
    python -m evalpool serve
"""

from evalpool.cli import main

if __name__ == "__main__":
    main()
