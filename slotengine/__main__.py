"""
Convenience entry point for running slotengine as a module.

Usage: python -m slotengine [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
