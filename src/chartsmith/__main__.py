"""Entry point for running chartsmith as a module.

Usage:
    python -m chartsmith [command] [options]

Example:
    python -m chartsmith render data.json --output chart.svg
    python -m chartsmith themes
"""

from chartsmith.cli import app

if __name__ == "__main__":
    app()
