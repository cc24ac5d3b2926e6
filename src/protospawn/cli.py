from __future__ import annotations

import argparse
import json
import logging
import os
import pathlib
import sys
from typing import Any, Dict, List, Optional

import yaml

from protospawn import __version__
from protospawn.config import ProtoCLIConfig
from protospawn.core.assets import AssetServer
from protospawn.engine import PrototypeEngine
from protospawn.errors import PrototypeError
from protospawn.exporter import export_to_json

logger = logging.getLogger(__name__)


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser("The protospawn commandline interface")

    parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        default=False,
        help="Print the version of protospawn",
    )

    parser.add_argument(
        "-c",
        "--config",
        help="Path to the configuration file to load before running",
    )

    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Folder to load prototype files from",
    )

    parser.add_argument(
        "-p",
        "--prototype",
        action="append",
        default=[],
        help="Name of a prototype to spawn (may be given more than once)",
    )

    parser.add_argument(
        "--validate",
        default=False,
        action="store_true",
        help="Resolve every loaded prototype and report errors without spawning",
    )

    parser.add_argument("-o", "--output", help="path to write the spawned world")

    parser.add_argument(
        "--no-emit",
        default=False,
        action="store_true",
        help="Disable creating an output file with the spawned world",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        default=False,
        action="store_true",
        help="Only print warnings and errors",
    )

    return parser.parse_args(argv)


def load_config_from_path(config_path: str) -> Dict[str, Any]:
    """
    This function loads the configuration file at the given path

    Parameters
    ----------
    config_path: str
        Path to a configuration file to load
    """
    path = pathlib.Path(os.path.abspath(config_path))

    with open(path, "r") as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        elif path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        else:
            raise ValueError(
                f"Attempted to load config from incorrect file type: {path.suffix}."
            )


def try_load_local_config() -> Optional[Dict[str, Any]]:
    """
    Attempt to load a configuration file in the current working
    directory.
    """
    config_load_precedence = [
        os.path.join(os.getcwd(), "protospawn.config.yaml"),
        os.path.join(os.getcwd(), "protospawn.config.yml"),
        os.path.join(os.getcwd(), "protospawn.config.json"),
    ]

    for path in config_load_precedence:
        if os.path.exists(path):
            return load_config_from_path(path)

    return None


def validate(engine: PrototypeEngine) -> int:
    """Build every loaded prototype and return the number of failures"""
    failures = 0

    for prototype in engine.library:
        try:
            engine.build(prototype.name)
        except PrototypeError as ex:
            failures += 1
            logger.error("%s: %s", prototype.name, ex)

    logger.info(
        "Validated %d prototype(s), %d failed", len(engine.library), failures
    )

    return failures


def run(argv: Optional[List[str]] = None) -> None:
    args = get_args(argv)

    if args.version:
        print(__version__)
        sys.exit(0)

    config = ProtoCLIConfig()

    if args.config:
        config = ProtoCLIConfig.from_partial(load_config_from_path(args.config), config)
    else:
        loaded_settings = try_load_local_config()
        if loaded_settings:
            config = ProtoCLIConfig.from_partial(loaded_settings, config)

    overrides: Dict[str, Any] = {}
    if args.path:
        overrides["path"] = args.path
    if args.prototype:
        overrides["prototypes"] = args.prototype
    if overrides:
        config = ProtoCLIConfig.from_partial(overrides, config)

    if args.quiet:
        level = logging.WARNING
    elif config.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s:%(name)s: %(message)s")

    engine = PrototypeEngine(config, assets=AssetServer(config.path))
    engine.load_plugins(config.plugins)

    try:
        engine.load_folder(config.path)
    except PrototypeError as ex:
        logger.error("%s", ex)
        sys.exit(1)

    if args.validate:
        sys.exit(1 if validate(engine) else 0)

    for name in config.prototypes:
        try:
            engine.spawn_now(name)
        except PrototypeError as ex:
            logger.error("%s", ex)
            sys.exit(1)

    if not args.no_emit:
        output_path = args.output if args.output else "protospawn_world.json"

        with open(output_path, "w") as f:
            data = export_to_json(engine.world)
            f.write(data)
