"""Build brands."""

from __future__ import annotations

from enum import Enum


class Brand(str, Enum):
    """Audience a simulation is built for."""

    PHET = "phet"
    PHET_IO = "phet-io"

    @classmethod
    def parse(cls, value: str) -> "Brand":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"unknown brand: {value}") from None

    def __str__(self) -> str:
        return self.value


# Brands a production deploy knows how to publish
PRODUCTION_BRANDS = (Brand.PHET, Brand.PHET_IO)
