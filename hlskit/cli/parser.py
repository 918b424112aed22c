"""
hlskit CLI argument parser.

This module implements the command-line interface for hlskit using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from hlskit.cli.utils import print_error
from hlskit.config.settings import ManagementMode
from hlskit.core.exceptions import HlsKitError
from hlskit.toolchain.ghcup import ListCategory, ToolKind

# Get version from package
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("hlskit")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)


class CLI:
    """hlskit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="hlskit",
            description="hlskit - Haskell Language Server toolchain resolver",
            epilog='Use "hlskit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"hlskit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ./hlskit.yaml)",
        )
        parser.add_argument(
            "--project-root",
            type=Path,
            metavar="PATH",
            default=Path.cwd(),
            help="Project root directory (default: current directory)",
        )
        parser.add_argument(
            "--storage-path",
            type=Path,
            metavar="PATH",
            help="Directory for downloads and caches (default: ~/.hlskit)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_resolve_command(subparsers)
        self._add_metadata_command(subparsers)
        self._add_list_command(subparsers)

        return parser

    def _add_resolve_command(self, subparsers):
        """Add 'resolve' subcommand."""
        parser = subparsers.add_parser(
            "resolve",
            help="Find or install the language server for a project",
            description=(
                "Work out the project's GHC version and install a matching "
                "haskell-language-server, printing the launcher path"
            ),
        )
        parser.add_argument(
            "--yes",
            "-y",
            action="store_true",
            help="Answer yes to every download confirmation",
        )
        parser.add_argument(
            "--non-interactive",
            action="store_true",
            help="Never prompt; use --mode or the configured mode",
        )
        parser.add_argument(
            "--mode",
            choices=[mode.value for mode in ManagementMode],
            metavar="MODE",
            help="Management mode when none is configured (GHCup|PATH)",
        )

    def _add_metadata_command(self, subparsers):
        """Add 'metadata' subcommand."""
        parser = subparsers.add_parser(
            "metadata",
            help="Show which GHC versions each HLS release supports",
            description="Fetch HLS release metadata for this platform and print it",
        )
        parser.add_argument(
            "--ghc",
            metavar="VERSION",
            help="Only show HLS releases supporting this GHC version",
        )

    def _add_list_command(self, subparsers):
        """Add 'list' subcommand."""
        parser = subparsers.add_parser(
            "list",
            help="List tool versions known to ghcup",
            description="List installed or available versions of a tool via ghcup",
        )
        parser.add_argument(
            "tool",
            choices=[kind.value for kind in ToolKind],
            help="Tool to list",
        )
        parser.add_argument(
            "--category",
            choices=[category.value for category in ListCategory],
            default=ListCategory.INSTALLED.value,
            help="Which versions to list [default: installed]",
        )

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except HlsKitError as e:
            print_error(str(e), f"See {e.link}" if e.link else None)
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        command_map = {
            "resolve": "hlskit.cli.commands.resolve",
            "metadata": "hlskit.cli.commands.metadata",
            "list": "hlskit.cli.commands.list",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            logger.error(f"Failed to load command module: {e}")
            return 1

        if not hasattr(module, "run"):
            logger.error(f"Command module {module_name} has no run() function")
            return 1

        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
