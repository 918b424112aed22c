"""
Entry point for running the hlskit CLI as a module.

Usage: python -m hlskit.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
