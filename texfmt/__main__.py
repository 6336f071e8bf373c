"""
Main entry point for texfmt.

This allows the package to be run as a module:
python -m texfmt
"""

from .cli.commands import main

if __name__ == '__main__':
    main()
