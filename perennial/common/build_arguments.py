"""
Grunt arguments for building a simulation.

The argument vocabulary changed between toolchain generations, so the same
BuildOptions render differently for chipper 0.0 and chipper 2.0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from perennial.common.brand import Brand
from perennial.common.chipper_version import ChipperVersion, ToolchainGeneration
from perennial.core.errors import IllegalStateError


@dataclass
class BuildOptions:
    """Knobs for one grunt build."""

    brands: list[str] = field(default_factory=lambda: [Brand.PHET.value])
    locales: Union[str, list[str]] = "en"
    all_html: bool = True
    debug_html: bool = True
    uglify: bool = True
    mangle: bool = True
    minify: bool = True
    lint: bool = True
    clean: bool = True
    thumbnails: bool = False
    twitter_card: bool = False
    build_for_server: bool = False

    @property
    def locales_argument(self) -> str:
        if isinstance(self.locales, str):
            return self.locales
        return ",".join(self.locales)


def get_build_arguments(chipper_version: ChipperVersion, options: BuildOptions) -> list[str]:
    """Arguments to pass to ``grunt`` in the simulation directory.

    Raises:
        IllegalStateError: If the toolchain generation cannot be built, or a
            legacy toolchain is asked for more than one brand.
    """
    args: list[str] = []
    brands = [str(brand) for brand in options.brands]
    generation = chipper_version.generation

    # Called "chipper 1.0" at the time, but its package.json said 0.0.0
    if generation is ToolchainGeneration.LEGACY:
        if len(brands) != 1:
            raise IllegalStateError("chipper 0.0.0 cannot build multiple brands at a time")
        if options.lint:
            args.append("lint-all")
        if options.clean:
            args.append("clean")
        args.append("build-for-server" if options.build_for_server else "build")
        if options.thumbnails:
            args.append("generate-thumbnails")
        if options.twitter_card:
            args.append("generate-twitter-card")
        args.append(f"--brand={brands[0]}")
        args.append(f"--locales={options.locales_argument}")
        if not options.uglify:
            args.append("--uglify=false")
        if not options.mangle:
            args.append("--mangle=false")
        if options.all_html and brands[0] != Brand.PHET_IO.value:
            args.append("--allHTML")
        if options.debug_html:
            args.append("--debugHTML")

    elif generation is ToolchainGeneration.MODERN:
        args.append(f"--brands={','.join(brands)}")
        args.append(f"--locales={options.locales_argument}")
        if not options.uglify:
            args.append("--minify.uglify=false")
        if not options.mangle:
            args.append("--minify.mangle=false")
        if not options.minify:
            args.append("--minify.minify=false")
        if not options.lint:
            args.append("--lint=false")
        if options.all_html:
            args.append("--allHTML")
        if options.debug_html:
            args.append("--debugHTML")

    else:
        raise IllegalStateError(f"unsupported chipper version: {chipper_version}")

    return args
