"""
Build-toolchain (chipper) versions.

Release branches span years of toolchain history. Only two generations are
buildable: the original 0.0 layout, and 2.0, which builds every brand into
its own ``build/{brand}/`` subdirectory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from perennial.core.errors import ParseError


class ToolchainGeneration(Enum):
    LEGACY = "0.0"
    MODERN = "2.0"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ChipperVersion:
    """``{major, minor}`` of a checked-out chipper."""

    major: int
    minor: int

    @classmethod
    def parse(cls, version_string: str) -> "ChipperVersion":
        parts = version_string.split(".")
        if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
            raise ParseError(f"could not parse chipper version: {version_string}")
        return cls(int(parts[0]), int(parts[1]))

    @classmethod
    def from_package_json(cls, path: Path) -> "ChipperVersion":
        """Read the version of a chipper checkout from its package.json."""
        data = json.loads(Path(path).read_text())
        return cls.parse(data["version"])

    @property
    def generation(self) -> ToolchainGeneration:
        if (self.major, self.minor) == (0, 0):
            return ToolchainGeneration.LEGACY
        if (self.major, self.minor) == (2, 0):
            return ToolchainGeneration.MODERN
        return ToolchainGeneration.UNSUPPORTED

    def is_supported(self) -> bool:
        return self.generation is not ToolchainGeneration.UNSUPPORTED

    def is_legacy(self) -> bool:
        return self.generation is ToolchainGeneration.LEGACY

    def uses_per_brand_subdirectories(self) -> bool:
        """Build output lives in ``build/{brand}/`` rather than ``build/``."""
        return self.generation is ToolchainGeneration.MODERN

    def strips_legacy_phet_suffix(self) -> bool:
        """Built phet files are named ``{sim}_en_phet.html`` and need renaming."""
        return self.generation is ToolchainGeneration.MODERN

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"
