"""
Resolve command implementation.

Finds or installs the haskell-language-server matching the project's GHC and
prints the launcher to use.
"""

import logging

from hlskit.cli.utils import (
    ConsoleInterface,
    config_store_for,
    load_cli_config,
    print_error,
    resolve_project_root,
    safe_print,
    storage_path_for,
)
from hlskit.config.settings import ManagementMode
from hlskit.core.exceptions import HlsKitError
from hlskit.core.interfaces import NonInteractiveInterface
from hlskit.toolchain.resolver import ResolutionContext, ToolchainResolver

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the resolve command.

    Args:
        args: Parsed command-line arguments with:
            - yes: Accept every download without asking
            - non_interactive: Never prompt
            - mode: Management mode used when none is configured

    Returns:
        Exit code (0 for success, 1 for error)
    """
    logger.debug(f"Arguments: {args}")
    project_root = resolve_project_root(args.project_root)

    try:
        config = load_cli_config(args)
    except HlsKitError as e:
        logger.error(f"Failed to load configuration: {e}")
        print_error("Failed to load configuration", str(e))
        return 1

    mode = ManagementMode(args.mode) if args.mode else None
    if args.non_interactive:
        ui = NonInteractiveInterface(management_mode=mode, assume_yes=args.yes)
    else:
        ui = ConsoleInterface(assume_yes=args.yes)
        if mode is not None and config.manage_hls is None:
            config.manage_hls = mode

    context = ResolutionContext(
        config=config,
        working_dir=project_root,
        storage_path=storage_path_for(config, args),
        ui=ui,
        workspace_folder=project_root,
        config_store=config_store_for(args),
    )
    try:
        server = ToolchainResolver(context).resolve()
    except HlsKitError:
        # Already reported through the user interface
        return 1

    safe_print(f"✓ Language server: {server.launcher}")
    if server.hls_version:
        safe_print(f"  HLS version: {server.hls_version}")
    if server.ghc_version:
        safe_print(f"  GHC version: {server.ghc_version}")
    if server.install_dir:
        safe_print(f"  Toolchain directory: {server.install_dir}")
    return 0
