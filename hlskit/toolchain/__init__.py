"""
Toolchain resolution module for hlskit.

This module provides functionality for:
- HLS release metadata fetching, caching and per-host projection
- ghcup discovery and invocation
- Classification of failed tool invocations
- The resolution state machine that produces a launchable server
"""

from hlskit.toolchain.diagnostics import classify_failure, reclassify
from hlskit.toolchain.ghcup import (
    GHCup,
    ListCategory,
    ToolInfo,
    ToolKind,
    find_ghcup,
    hls_wrapper_path,
    parse_list_output,
)
from hlskit.toolchain.metadata import (
    ReleaseMetadata,
    ReleaseMetadataClient,
    find_supported_hls_per_ghc,
    get_hls_metadata,
)
from hlskit.toolchain.resolver import (
    ResolutionContext,
    ResolutionState,
    ResolvedServer,
    ToolchainResolver,
    toolchain_id,
)

__all__ = [
    # Diagnostics
    "classify_failure",
    "reclassify",
    # ghcup
    "GHCup",
    "ListCategory",
    "ToolInfo",
    "ToolKind",
    "find_ghcup",
    "hls_wrapper_path",
    "parse_list_output",
    # Metadata
    "ReleaseMetadata",
    "ReleaseMetadataClient",
    "find_supported_hls_per_ghc",
    "get_hls_metadata",
    # Resolver
    "ResolutionContext",
    "ResolutionState",
    "ResolvedServer",
    "ToolchainResolver",
    "toolchain_id",
]
