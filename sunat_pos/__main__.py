"""
Main entry point for running sunat_pos as a module.

Usage:
    python -m sunat_pos [options] COMMAND
"""
import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
