from __future__ import annotations

import importlib
import logging
import os
import pathlib
import sys
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional, Type, TypedDict, TypeVar, Union

from protospawn.config import PluginConfig, ProtoConfig
from protospawn.content_management import PrototypeLibrary
from protospawn.core.assets import AssetServer
from protospawn.core.deps import DependencySet
from protospawn.core.ecs import GameObject, IComponentFactory, World
from protospawn.core.prototype import Prototype
from protospawn.core.schematics import MergePolicy, Schematic, SchematicRegistry
from protospawn.core.spawn import SpawnCoordinator, SpawnRequest
from protospawn.core.tree import EntityNode
from protospawn.loaders import (
    FileSystemPrototypeSource,
    load_folder,
    parse_prototype,
    watch_prototypes,
)

logger = logging.getLogger(__name__)

_ST = TypeVar("_ST", bound=Schematic)
_CT = TypeVar("_CT")


class PluginSetupError(Exception):
    """
    Exception thrown when an error occurs while loading a plugin

    Attributes
    ----------
    message: str
        Text explaining the error that occurred
    """

    __slots__ = "message"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"PluginSetupError('{self.message}')"


class PluginInfo(TypedDict):
    name: str
    plugin_id: str
    version: str


class PrototypeEngine:
    """
    Main entry class for loading and spawning prototypes

    Attributes
    ----------
    config: ProtoConfig
        Configuration settings for loading and spawning
    world: World
        Entity-component store that prototypes are spawned into
    registry: SchematicRegistry
        Schematic types available to prototype files
    library: PrototypeLibrary
        Every loaded prototype
    assets: AssetServer
        Loads assets and reports changes
    coordinator: SpawnCoordinator
        Drives spawn requests
    plugins: Dict[str, ModuleType]
        Loaded plugin modules by plugin id
    """

    __slots__ = (
        "config",
        "world",
        "registry",
        "library",
        "assets",
        "coordinator",
        "plugins",
    )

    def __init__(
        self,
        config: Optional[ProtoConfig] = None,
        world: Optional[World] = None,
        assets: Optional[AssetServer] = None,
    ) -> None:
        self.config: ProtoConfig = config if config else ProtoConfig()
        self.world: World = world if world else World()
        self.registry: SchematicRegistry = SchematicRegistry()
        self.library: PrototypeLibrary = PrototypeLibrary(self.config)
        self.assets: AssetServer = assets if assets else AssetServer()
        self.coordinator: SpawnCoordinator = SpawnCoordinator(
            self.world, self.library, self.registry, self.assets, self.config
        )
        self.plugins: Dict[str, ModuleType] = {}

    def load_plugin(
        self,
        module_name: str,
        path: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Load a plugin

        Parameters
        ----------
        module_name: str
            Name of module to load
        path: Optional[str]
            Path where the Python module lives
        options: Optional[Dict[str, Any]]
            Keyword arguments passed to the plugin's setup function
        """

        if path is not None:
            plugin_abs_path = os.path.abspath(path)
            sys.path.insert(0, plugin_abs_path)

        try:
            plugin_module = importlib.import_module(module_name)
        finally:
            if path is not None:
                sys.path.pop(0)

        plugin_info: Optional[PluginInfo] = getattr(plugin_module, "plugin_info", None)
        plugin_setup_fn: Optional[Callable[..., None]] = getattr(
            plugin_module, "setup", None
        )

        if plugin_info is None:
            raise PluginSetupError(
                f"Cannot find 'plugin_info' dict in plugin: {module_name}."
            )

        if plugin_setup_fn is None:
            raise PluginSetupError(
                f"'setup' function not found for plugin: {module_name}"
            )

        if not callable(plugin_setup_fn):
            raise PluginSetupError(
                f"'setup' function is not callable in plugin: {module_name}"
            )

        plugin_setup_fn(self, **(options if options else {}))

        self.plugins[plugin_info["plugin_id"]] = plugin_module
        logger.info("Loaded plugin '%s'", plugin_info["name"])

    def load_plugins(self, plugins: List[Union[str, PluginConfig]]) -> None:
        for plugin in plugins:
            if isinstance(plugin, PluginConfig):
                self.load_plugin(plugin.name, plugin.path, plugin.options)
            else:
                self.load_plugin(plugin)

    def register_schematic(
        self,
        model_type: Type[_ST],
        name: Optional[str] = None,
        merge_policy: MergePolicy = MergePolicy.OVERRIDE,
    ) -> Type[_ST]:
        return self.registry.register_schematic(model_type, name, merge_policy)

    def register_component(
        self,
        component_type: Type[_CT],
        name: Optional[str] = None,
        factory: Optional[IComponentFactory] = None,
        merge_policy: MergePolicy = MergePolicy.OVERRIDE,
    ) -> Type[_CT]:
        self.registry.register_component(component_type, name, factory, merge_policy)
        return component_type

    def add_prototype(self, data: Union[Prototype, Dict[str, Any]]) -> Prototype:
        """Register a prototype given as a model or as raw data"""
        prototype = (
            data
            if isinstance(data, Prototype)
            else parse_prototype(data, None, self.config)
        )
        self.library.add(prototype)
        return prototype

    def load_folder(
        self, root: Union[str, pathlib.Path], watch: bool = False
    ) -> List[Prototype]:
        """
        Load every prototype file under a folder

        Parameters
        ----------
        root: Union[str, pathlib.Path]
            The folder to load from. Template paths are relative to it.
        watch: bool, optional
            Reload files when the asset server reports changes
            (defaults to False)
        """
        source = FileSystemPrototypeSource(root, self.config)
        loaded = load_folder(self.library, source)
        if watch:
            watch_prototypes(self.library, source, self.assets)
        return loaded

    def build(self, name: str) -> EntityNode:
        """Resolve a prototype into a tree without spawning it"""
        return self.coordinator.builder.build_prototype(self.library.get(name))

    def preload(self, name: str) -> DependencySet:
        return self.coordinator.preload(name)

    def spawn(
        self, prototype: Union[str, Prototype], parent: Optional[GameObject] = None
    ) -> SpawnRequest:
        """Start spawning a prototype. See SpawnCoordinator.spawn."""
        return self.coordinator.spawn(prototype, parent)

    def spawn_now(
        self, prototype: Union[str, Prototype], parent: Optional[GameObject] = None
    ) -> GameObject:
        """
        Spawn a prototype, driving the asset server until the request finishes

        Raises
        ------
        Exception
            The error that failed the request
        """
        request = self.coordinator.spawn(prototype, parent)

        while not request.is_done:
            if self.assets.update() == 0:
                break

        return request.get()

    def update(self) -> None:
        """Let the asset server progress pending loads"""
        self.assets.update()
