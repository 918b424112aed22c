"""
List command implementation.

Shows the versions of a tool ghcup knows about.
"""

import logging

from hlskit.cli.utils import load_cli_config, safe_print, storage_path_for
from hlskit.config.settings import resolve_server_environment
from hlskit.core.exceptions import MissingToolError
from hlskit.core.filesystem import executable_suffix
from hlskit.core.process import ProcessRunner, build_environment
from hlskit.toolchain.ghcup import GHCup, ListCategory, ToolKind, find_ghcup

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list command.

    Args:
        args: Parsed command-line arguments with:
            - tool: ghc, cabal, stack or hls
            - category: installed, available or set

    Returns:
        Exit code (0 for success)
    """
    config = load_cli_config(args)
    server_environment = resolve_server_environment(config.server_environment)
    runner = ProcessRunner(base_environment=server_environment)

    try:
        executable = find_ghcup(
            config, args.project_root, build_environment(server_environment)
        )
        base_prefix = None
    except MissingToolError:
        # Fall back to a ghcup installed by 'hlskit resolve'
        storage = storage_path_for(config, args)
        executable = storage / f"ghcup{executable_suffix()}"
        if not executable.exists():
            raise
        base_prefix = storage

    ghcup = GHCup(
        executable,
        runner,
        metadata_url=config.metadata_url,
        upgrade_enabled=False,
        base_prefix=base_prefix,
    )
    kind = ToolKind(args.tool)
    tools = ghcup.list_tool(kind, ListCategory(args.category))
    if not tools:
        safe_print(f"No {args.category} {kind.value} versions")
        return 0

    for tool in tools:
        tags = f"  ({', '.join(sorted(tool.tags))})" if tool.tags else ""
        safe_print(f"{kind.value} {tool.version}{tags}")
    return 0
