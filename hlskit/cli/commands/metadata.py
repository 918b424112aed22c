"""
Metadata command implementation.

Prints the GHC versions each HLS release supports on this host.
"""

import logging

from hlskit.cli.utils import load_cli_config, safe_print, storage_path_for
from hlskit.core.version import sort_versions
from hlskit.toolchain.metadata import ReleaseMetadataClient, get_hls_metadata

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the metadata command.

    Args:
        args: Parsed command-line arguments with:
            - ghc: Only show releases supporting this GHC version

    Returns:
        Exit code (0 for success, 1 if no release matches)
    """
    config = load_cli_config(args)
    client = ReleaseMetadataClient(
        storage_path_for(config, args), config.releases_url
    )
    supported = get_hls_metadata(client)

    if args.ghc:
        supported = {
            hls: ghcs for hls, ghcs in supported.items() if args.ghc in ghcs
        }
        if not supported:
            safe_print(f"No HLS release supports GHC {args.ghc}")
            return 1

    for hls in reversed(sort_versions(supported)):
        ghcs = reversed(sort_versions(supported[hls]))
        safe_print(f"HLS {hls}: {', '.join(ghcs)}")
    return 0
