"""
protospawn/loaders.py

Utility classes and functions for importing prototype files
"""
from __future__ import annotations

import json
import logging
import pathlib
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Union

import pydantic
import yaml

from protospawn.config import ProtoConfig
from protospawn.content_management import PrototypeLibrary
from protospawn.core.assets import AssetServer
from protospawn.core.prototype import Prototype
from protospawn.errors import PrototypeError, PrototypeLoadError

logger = logging.getLogger(__name__)


class IPrototypeSource(Protocol):
    """Provides raw prototype data by path"""

    def read(self, path: str) -> Tuple[Any, str]:
        """
        Read the data at the given path

        Returns
        -------
        Tuple[Any, str]
            The deserialized data and the file extension it was read with
        """
        raise NotImplementedError

    def iter_paths(self) -> List[str]:
        """Return the paths of every prototype the source can provide"""
        raise NotImplementedError


class FileSystemPrototypeSource:
    """
    Reads prototype files from a folder

    Attributes
    ----------
    root: pathlib.Path
        The folder that prototype paths are relative to
    config: ProtoConfig
        Provides the recognized file extensions
    """

    __slots__ = "root", "config"

    def __init__(
        self, root: Union[str, pathlib.Path], config: Optional[ProtoConfig] = None
    ) -> None:
        self.root: pathlib.Path = pathlib.Path(root)
        self.config: ProtoConfig = config if config else ProtoConfig()

    def read(self, path: str) -> Tuple[Any, str]:
        extension = self.config.match_extension(path)

        if extension is None:
            raise PrototypeLoadError(
                path, f"file extension is not one of {self.config.extensions}"
            )

        file_path = self.root / path

        try:
            with open(file_path, "r") as f:
                if file_path.suffix.lower() == ".json":
                    data = json.load(f)
                elif file_path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    raise PrototypeLoadError(
                        path, f"no parser for files ending in '{file_path.suffix}'"
                    )
        except OSError as ex:
            raise PrototypeLoadError(path, str(ex)) from ex
        except (yaml.YAMLError, json.JSONDecodeError) as ex:
            raise PrototypeLoadError(path, str(ex)) from ex

        return data, extension

    def iter_paths(self) -> List[str]:
        return sorted(
            file_path.relative_to(self.root).as_posix()
            for file_path in self.root.rglob("*")
            if file_path.is_file()
            and self.config.match_extension(file_path.name) is not None
        )


def parse_prototype(
    data: Any, path: Optional[str] = None, config: Optional[ProtoConfig] = None
) -> Prototype:
    """
    Build a Prototype from deserialized data

    Parameters
    ----------
    data: Any
        The deserialized contents of a prototype file
    path: str, optional
        The path the data was read from
    config: ProtoConfig, optional
        Provides the template delimiter

    Returns
    -------
    Prototype
        The validated prototype
    """
    config = config if config else ProtoConfig()
    source = path if path else "<memory>"

    if not isinstance(data, dict):
        raise PrototypeLoadError(source, "expected a mapping at the top level")

    if "name" not in data:
        raise PrototypeLoadError(source, "missing field, 'name'")

    fields: Dict[str, Any] = {**data, "path": path}

    try:
        return Prototype.model_validate(
            fields, context={"template_delimiter": config.template_delimiter}
        )
    except pydantic.ValidationError as ex:
        raise PrototypeLoadError(source, str(ex)) from ex


def load_prototype_file(
    library: PrototypeLibrary, source: IPrototypeSource, path: str
) -> Prototype:
    """Read, validate, and register the prototype at the given path"""
    data, _ = source.read(path)
    prototype = parse_prototype(data, path, library.config)
    library.add(prototype)
    return prototype


def load_folder(
    library: PrototypeLibrary, source: IPrototypeSource
) -> List[Prototype]:
    """Load every prototype file the source provides"""
    loaded = [
        load_prototype_file(library, source, path) for path in source.iter_paths()
    ]
    logger.info("Loaded %d prototype(s)", len(loaded))
    return loaded


def reload_prototype_file(
    library: PrototypeLibrary, source: IPrototypeSource, path: str
) -> List[str]:
    """
    Read the prototype at the given path again and replace the loaded version

    Returns
    -------
    List[str]
        Names of every prototype invalidated by the change
    """
    data, _ = source.read(path)
    return library.reload(parse_prototype(data, path, library.config))


def watch_prototypes(
    library: PrototypeLibrary,
    source: IPrototypeSource,
    assets: AssetServer,
    paths: Optional[Iterable[str]] = None,
) -> None:
    """Reload prototype files whenever the asset server reports them changed"""

    def on_changed(path: str) -> None:
        try:
            reload_prototype_file(library, source, path)
        except PrototypeError as ex:
            logger.error("Could not reload '%s': %s", path, ex)

    for path in paths if paths is not None else source.iter_paths():
        assets.subscribe_changed(path, on_changed)
