"""
Entry point for running hlskit as a module.

Usage: python -m hlskit [command] [options]
"""

from hlskit.cli.parser import main

if __name__ == "__main__":
    main()
