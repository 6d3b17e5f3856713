"""Command line interface of the bindings generator."""

import argparse
import glob
import logging
from collections.abc import Sequence
from functools import partial
from pathlib import Path

import anyio

from ._generator import DEFAULT_NETWORK_ID, GenerationConfig, GenerationError, generate_bindings
from ._templates import TemplateError, TemplateSet
from ._type_mapper import Backend, OutputLanguage

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abibind", description="Generate typed contract bindings from JSON ABI artifacts"
    )
    parser.add_argument("--abis", required=True, help="Glob pattern matching the ABI artifacts")
    parser.add_argument(
        "-o", "--output", "--out", dest="output", required=True, help="Output directory"
    )
    parser.add_argument(
        "--template", default=None, help="Main template (the bundled one is used by default)"
    )
    parser.add_argument("--partials", default=None, help="Glob pattern matching partial templates")
    parser.add_argument(
        "--backend",
        choices=[backend.value for backend in Backend],
        default=Backend.WEB3.value,
        help="Client library the TypeScript bindings are written against",
    )
    parser.add_argument(
        "--network-id",
        type=int,
        default=DEFAULT_NETWORK_ID,
        help="Network to take the ABI from, for artifacts keeping one per network",
    )
    parser.add_argument(
        "--language",
        choices=[language.value for language in OutputLanguage],
        default=OutputLanguage.PYTHON.value,
        help="Language of the generated bindings",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every step")
    return parser


def main(argv: None | Sequence[str] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.partials is not None and args.template is None:
        parser.error("--partials can only be used together with --template")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = GenerationConfig(
        language=OutputLanguage(args.language),
        backend=Backend(args.backend),
        network_id=args.network_id,
    )

    paths = [Path(path) for path in sorted(glob.glob(args.abis, recursive=True))]
    if not paths:
        logger.error("No ABI files found matching %s", args.abis)
        return 1
    logger.info("Found %d ABI files", len(paths))

    try:
        if args.template is None:
            templates = TemplateSet.bundled(config.language)
        else:
            templates = TemplateSet.from_paths(Path(args.template), args.partials)
        anyio.run(
            partial(generate_bindings, paths, Path(args.output), templates, config),
        )
    except (GenerationError, TemplateError) as exc:
        logger.error("Generation failed: %s", exc)
        return 1

    return 0
