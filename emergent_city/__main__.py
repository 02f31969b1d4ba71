"""
Run the terminal game.

Usage:
    python -m emergent_city
"""

from .interface.cli import main

main()
