"""
perennial.common - Release branch model and the helpers it is built on.
"""

# Versions
from perennial.common.sim_version import SimVersion
from perennial.common.chipper_version import ChipperVersion, ToolchainGeneration
from perennial.common.brand import Brand, PRODUCTION_BRANDS

# Build arguments
from perennial.common.build_arguments import BuildOptions, get_build_arguments

# Dependencies
from perennial.common.dependencies import (
    FEATURE_MARKERS,
    DependencySnapshot,
    FeatureMarker,
)

# Release branches
from perennial.common.release_branch import ReleaseBranch

__all__ = [
    # Versions
    "SimVersion",
    "ChipperVersion",
    "ToolchainGeneration",
    "Brand",
    "PRODUCTION_BRANDS",
    # Build arguments
    "BuildOptions",
    "get_build_arguments",
    # Dependencies
    "FEATURE_MARKERS",
    "DependencySnapshot",
    "FeatureMarker",
    # Release branches
    "ReleaseBranch",
]
