"""
Simulation version numbers.

Versions look like ``MAJOR.MINOR.MAINTENANCE[-TESTTYPE.TESTNUMBER]``, e.g.
``1.5.0``, ``1.5.0-rc.2`` or ``1.5.0-dev.3``. Release branches are named
``MAJOR.MINOR`` (optionally ``MAJOR.MINOR-suffix``).
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Any, Optional

from perennial.core.errors import ParseError

# A trailing "-phetio" style brand suffix is accepted and dropped
VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)(-(([^.-]+)\.(\d+)))?(-([^.-]+))?$")


@functools.total_ordering
@dataclass(eq=False)
class SimVersion:
    """A parsed simulation version.

    Equality, ordering and hashing only look at (major, minor, maintenance);
    test metadata and the build timestamp are carried along but never compared.
    """

    major: int
    minor: int
    maintenance: int
    test_type: Optional[str] = None
    test_number: Optional[int] = None
    build_timestamp: Optional[str] = None

    def __post_init__(self) -> None:
        self.major = int(self.major)
        self.minor = int(self.minor)
        self.maintenance = int(self.maintenance)
        if self.test_number is not None:
            self.test_number = int(self.test_number)

        for name in ("major", "minor", "maintenance"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} version should be a non-negative integer: {getattr(self, name)}")
        if (self.test_type is None) != (self.test_number is None):
            raise ValueError("test_type and test_number must be provided together")

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    @classmethod
    def parse(cls, version_string: str, build_timestamp: Optional[str] = None) -> "SimVersion":
        """Parse a version string.

        Raises:
            ParseError: If the string is not a version.
        """
        match = VERSION_PATTERN.match(version_string)
        if not match:
            raise ParseError(f"could not parse version: {version_string}")

        test_number = match.group(7)
        return cls(
            int(match.group(1)),
            int(match.group(2)),
            int(match.group(3)),
            test_type=match.group(6),
            test_number=int(test_number) if test_number is not None else None,
            build_timestamp=build_timestamp,
        )

    @classmethod
    def from_branch(cls, branch: str) -> "SimVersion":
        """Version for a ``MAJOR.MINOR`` branch, with maintenance 0."""
        bits = branch.split(".")
        if len(bits) != 2 or not all(bit.isdigit() for bit in bits):
            raise ParseError(f"Bad branch, should be {{MAJOR}}.{{MINOR}}, had: {branch}")
        return cls(int(bits[0]), int(bits[1]), 0)

    @classmethod
    def ensure_release_branch(cls, branch: str) -> "SimVersion":
        """Check that ``branch`` (e.g. ``1.4`` or ``1.4-phetio``) names a release branch."""
        version = cls.from_branch(branch.split("-")[0])
        if version.major <= 0:
            raise ParseError(f"Major version for a branch should be greater than zero: {branch}")
        return version

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def serialize(self) -> dict[str, Any]:
        return {
            "major": self.major,
            "minor": self.minor,
            "maintenance": self.maintenance,
            "testType": self.test_type,
            "testNumber": self.test_number,
            "buildTimestamp": self.build_timestamp,
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any]) -> "SimVersion":
        return cls(
            data["major"],
            data["minor"],
            data["maintenance"],
            test_type=data.get("testType"),
            test_number=data.get("testNumber"),
            build_timestamp=data.get("buildTimestamp"),
        )

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    @staticmethod
    def comparator(a: "SimVersion", b: "SimVersion") -> int:
        """-1, 0 or 1, like a sort comparator. Test metadata is ignored."""
        left = (a.major, a.minor, a.maintenance)
        right = (b.major, b.minor, b.maintenance)
        if left < right:
            return -1
        if left > right:
            return 1
        return 0

    def compare(self, other: "SimVersion") -> int:
        return SimVersion.comparator(self, other)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SimVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "SimVersion") -> bool:
        if not isinstance(other, SimVersion):
            return NotImplemented
        return self.compare(other) == -1

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.maintenance))

    def is_after(self, other: "SimVersion") -> bool:
        return self.compare(other) == 1

    def is_before_or_equal_to(self, other: "SimVersion") -> bool:
        return self.compare(other) <= 0

    # -------------------------------------------------------------------------
    # Publication state
    # -------------------------------------------------------------------------

    @property
    def is_sim_not_published(self) -> bool:
        """0.x versions and 1.0.0 test versions have never been published."""
        return self.major < 1 or (
            self.major == 1
            and self.minor == 0
            and self.maintenance == 0
            and self.test_type is not None
        )

    @property
    def is_sim_published(self) -> bool:
        return not self.is_sim_not_published

    @property
    def branch(self) -> str:
        """The release branch this version lives on."""
        return f"{self.major}.{self.minor}"

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.maintenance}"
        if isinstance(self.test_type, str):
            text += f"-{self.test_type}.{self.test_number}"
        return text
