"""
protospawn/core/spawn.py

Turns prototypes into live entities.

A spawn request moves through the following states:

    COLLECTING          resolve templates, build the tree, collect dependencies
    AWAITING_ASSETS     wait for the asset server to report every asset ready
    CREATING_ENTITIES   create one bare entity per node, parents first
    APPLYING_SCHEMATICS apply every node's schematics in the same order
    COMPLETE            the root GameObject is available
    FAILED              the request's error is available (reachable from any state)

Spawning is all-or-nothing. If anything fails after the first entity is
created, every entity created for the request is destroyed again.
"""
from __future__ import annotations

import enum
import functools
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from ordered_set import OrderedSet

from protospawn.config import ProtoConfig
from protospawn.content_management import PrototypeLibrary
from protospawn.core.access import EntityPath, EntityPathResolver
from protospawn.core.assets import AssetHandle, AssetRef, AssetServer, LoadState
from protospawn.core.deps import DependencyCollector, DependencySet
from protospawn.core.ecs import GameObject, World
from protospawn.core.prototype import Prototype
from protospawn.core.schematics import SchematicRegistry
from protospawn.core.templates import TemplateResolver
from protospawn.core.tree import EntityNode, HierarchyBuilder
from protospawn.errors import (
    AssetLoadFailedError,
    StaleTemplateError,
    TemplateNotFoundError,
)

logger = logging.getLogger(__name__)


class SpawnTree:
    """
    Flattened view of an EntityNode tree used while spawning

    Nodes are stored in depth-first pre-order, so the root has index 0 and
    every parent comes before its children.

    Attributes
    ----------
    nodes: List[EntityNode]
        Nodes in pre-order
    cursor: int
        Index of the node currently being processed
    schematic: Optional[str]
        Type id of the schematic currently being applied
    """

    __slots__ = "nodes", "cursor", "schematic", "_parents", "_children", "_entities"

    def __init__(self, root: EntityNode) -> None:
        self.nodes: List[EntityNode] = []
        self.cursor: int = 0
        self.schematic: Optional[str] = None
        self._parents: List[Optional[int]] = []
        self._children: List[List[int]] = []
        self._entities: Dict[int, int] = {}

        stack: List[Tuple[EntityNode, Optional[int]]] = [(root, None)]
        while stack:
            node, parent = stack.pop()
            index = len(self.nodes)
            self.nodes.append(node)
            self._parents.append(parent)
            self._children.append([])
            if parent is not None:
                self._children[parent].append(index)
            stack.extend((child, index) for child in reversed(node.children))

    @property
    def root(self) -> EntityNode:
        return self.nodes[0]

    def parent_of(self, index: int) -> Optional[int]:
        return self._parents[index]

    def children_of(self, index: int) -> List[int]:
        return self._children[index]

    def entity_of(self, index: int) -> Optional[int]:
        return self._entities.get(index)

    def set_entity(self, index: int, entity: int) -> None:
        self._entities[index] = entity

    def get_entities(self) -> List[int]:
        """Entity ids in creation order"""
        return [self._entities[i] for i in sorted(self._entities)]

    def node_path(self, index: int) -> str:
        """Human-readable path of a node, used in error messages"""
        names: List[str] = []
        current: Optional[int] = index
        while current is not None:
            names.append(self.nodes[current].name)
            current = self._parents[current]
        return "/".join(reversed(names))

    def __len__(self) -> int:
        return len(self.nodes)


class SpawnState(enum.Enum):
    COLLECTING = 0
    AWAITING_ASSETS = 1
    CREATING_ENTITIES = 2
    APPLYING_SCHEMATICS = 3
    COMPLETE = 4
    FAILED = 5


class SchematicContext:
    """
    Everything a schematic can reach while it is applied

    Attributes
    ----------
    world: World
        The world entities are spawned into
    tree: SpawnTree
        The tree being spawned
    index: int
        Pre-order index of the node being processed
    type_id: str
        The schematic type being applied
    """

    __slots__ = "world", "tree", "index", "type_id", "_assets", "_paths"

    def __init__(
        self,
        world: World,
        tree: SpawnTree,
        index: int,
        type_id: str,
        assets: AssetServer,
        paths: EntityPathResolver,
    ) -> None:
        self.world: World = world
        self.tree: SpawnTree = tree
        self.index: int = index
        self.type_id: str = type_id
        self._assets: AssetServer = assets
        self._paths: EntityPathResolver = paths

    @property
    def node(self) -> EntityNode:
        return self.tree.nodes[self.index]

    @property
    def entity(self) -> int:
        entity = self.tree.entity_of(self.index)
        assert entity is not None
        return entity

    @property
    def gameobject(self) -> GameObject:
        return self.world.get_gameobject(self.entity)

    def add_component(self, component: Any) -> None:
        """Attach a component to the entity being spawned"""
        self.world.add_component(self.entity, component)

    def find_entity(self, path: Union[EntityPath, str]) -> int:
        """Resolve an entity path relative to the current node"""
        return self._paths.resolve(EntityPath.parse(path), self.index, self.tree)

    def find_gameobject(self, path: Union[EntityPath, str]) -> GameObject:
        return self.world.get_gameobject(self.find_entity(path))

    def get_asset(self, asset: Union[AssetRef, str]) -> Any:
        """Return a loaded asset that the schematic declared as a dependency"""
        ref = AssetRef.parse(asset)
        handle = self._assets.get_handle(ref.path)
        if handle is None or not self._assets.is_ready(handle):
            raise AssetLoadFailedError(ref.path, "asset was not loaded for this spawn")
        return self._assets.get(handle)


class SpawnRequest:
    """
    The progress and outcome of one spawn

    Attributes
    ----------
    name: str
        Name of the prototype being spawned
    parent: Optional[GameObject]
        Existing GameObject the root is parented to
    state: SpawnState
        Current state of the request
    error: Optional[Exception]
        The error that failed the request
    gameobject: Optional[GameObject]
        The spawned root once complete
    tree: Optional[SpawnTree]
        The flattened entity tree
    dependencies: Optional[DependencySet]
        Assets and entity paths the tree needs
    versions: Dict[str, int]
        Versions of every contributing prototype at collection time
    """

    __slots__ = (
        "name",
        "parent",
        "state",
        "error",
        "gameobject",
        "tree",
        "dependencies",
        "versions",
        "_pending",
        "_callbacks",
    )

    def __init__(self, name: str, parent: Optional[GameObject] = None) -> None:
        self.name: str = name
        self.parent: Optional[GameObject] = parent
        self.state: SpawnState = SpawnState.COLLECTING
        self.error: Optional[Exception] = None
        self.gameobject: Optional[GameObject] = None
        self.tree: Optional[SpawnTree] = None
        self.dependencies: Optional[DependencySet] = None
        self.versions: Dict[str, int] = {}
        self._pending: Set[AssetHandle] = set()
        self._callbacks: List[Callable[[SpawnRequest], None]] = []

    @property
    def is_done(self) -> bool:
        return self.state in (SpawnState.COMPLETE, SpawnState.FAILED)

    def add_done_callback(self, callback: Callable[[SpawnRequest], None]) -> None:
        """Call the callback once the request completes or fails"""
        if self.is_done:
            callback(self)
        else:
            self._callbacks.append(callback)

    def get(self) -> GameObject:
        """
        Return the spawned root GameObject

        Raises
        ------
        Exception
            The error that failed the request
        RuntimeError
            If the request has not finished
        """
        if self.state == SpawnState.FAILED:
            assert self.error is not None
            raise self.error

        if self.gameobject is None:
            raise RuntimeError(
                f"Spawn of '{self.name}' is not finished (state: {self.state.name})."
            )

        return self.gameobject

    def _finish(self, state: SpawnState) -> None:
        self.state = state
        callbacks = self._callbacks
        self._callbacks = []
        for callback in callbacks:
            callback(self)

    def __repr__(self) -> str:
        return "{}(name={}, state={}, error={})".format(
            self.__class__.__name__, self.name, self.state.name, self.error
        )


class SpawnCoordinator:
    """
    Drives spawn requests from prototype names to live entities

    Attributes
    ----------
    world: World
        The world entities are spawned into
    library: PrototypeLibrary
        Loaded prototypes
    assets: AssetServer
        Provides asset readiness
    resolver: TemplateResolver
        Flattens template chains
    builder: HierarchyBuilder
        Builds entity trees
    collector: DependencyCollector
        Gathers tree dependencies
    paths: EntityPathResolver
        Resolves entity paths during application
    """

    __slots__ = (
        "world",
        "library",
        "assets",
        "resolver",
        "builder",
        "collector",
        "paths",
        "_in_flight",
    )

    def __init__(
        self,
        world: World,
        library: PrototypeLibrary,
        registry: SchematicRegistry,
        assets: AssetServer,
        config: Optional[ProtoConfig] = None,
    ) -> None:
        config = config if config else library.config
        self.world: World = world
        self.library: PrototypeLibrary = library
        self.assets: AssetServer = assets
        self.resolver: TemplateResolver = TemplateResolver(library, registry, config)
        self.builder: HierarchyBuilder = HierarchyBuilder(library, self.resolver)
        self.collector: DependencyCollector = DependencyCollector()
        self.paths: EntityPathResolver = EntityPathResolver(config.strict_entity_paths)
        self._in_flight: List[SpawnRequest] = []
        library.subscribe_changed(self._on_library_changed)

    @property
    def in_flight(self) -> List[SpawnRequest]:
        return list(self._in_flight)

    def spawn(
        self, prototype: Union[str, Prototype], parent: Optional[GameObject] = None
    ) -> SpawnRequest:
        """
        Start spawning a prototype

        Parameters
        ----------
        prototype: Union[str, Prototype]
            Name of a loaded prototype, or an unregistered prototype
        parent: GameObject, optional
            Existing GameObject to parent the spawned root to

        Returns
        -------
        SpawnRequest
            The request. It completes immediately when no assets are
            pending, otherwise as the asset server reports them ready.
        """
        name = prototype if isinstance(prototype, str) else prototype.name
        request = SpawnRequest(name, parent)
        self._in_flight.append(request)

        try:
            self._collect(request, prototype)
        except Exception as ex:
            self._fail(request, ex)
            return request

        self._await_assets(request)
        return request

    def preload(self, name: str) -> DependencySet:
        """Collect a prototype's dependencies and request its assets without spawning"""
        root = self.builder.build_prototype(self._lookup(name))
        deps = self.collector.collect(root)
        for ref in deps.assets:
            self.assets.request_load(ref.path)
        return deps

    def _lookup(self, name: str) -> Prototype:
        if name not in self.library:
            raise TemplateNotFoundError(name)
        return self.library.get(name)

    def _collect(self, request: SpawnRequest, prototype: Union[str, Prototype]) -> None:
        if isinstance(prototype, str):
            prototype = self._lookup(prototype)

        root = self.builder.build_prototype(prototype)
        request.dependencies = self.collector.collect(root)
        request.tree = SpawnTree(root)
        request.versions = self.library.versions(
            OrderedSet(name for node in root.iter_preorder() for name in node.prototypes)
        )

        logger.debug(
            "Collected '%s': %d node(s), %d asset(s)",
            request.name,
            len(request.tree),
            len(request.dependencies.assets),
        )

    def _await_assets(self, request: SpawnRequest) -> None:
        assert request.dependencies is not None
        request.state = SpawnState.AWAITING_ASSETS

        handles = [
            self.assets.request_load(path)
            for path in request.dependencies.asset_paths
        ]
        request._pending = set(handles)

        if not handles:
            self._spawn_entities(request)
            return

        for handle in handles:
            self.assets.subscribe_ready(
                handle, functools.partial(self._on_asset_ready, request)
            )

    def _on_asset_ready(
        self, request: SpawnRequest, handle: AssetHandle, state: LoadState
    ) -> None:
        if request.is_done:
            return

        if state == LoadState.FAILED:
            self._fail(
                request,
                AssetLoadFailedError(handle.path, self.assets.get_failure_reason(handle)),
            )
            return

        request._pending.discard(handle)
        if not request._pending:
            self._spawn_entities(request)

    def _spawn_entities(self, request: SpawnRequest) -> None:
        assert request.tree is not None
        tree = request.tree
        request.state = SpawnState.CREATING_ENTITIES

        stale = [
            name
            for name, version in request.versions.items()
            if self.library.version(name) != version
        ]
        if stale:
            self._fail(request, StaleTemplateError(stale))
            return

        with self.world.exclusive():
            try:
                self._create_entities(request, tree)
                request.state = SpawnState.APPLYING_SCHEMATICS
                self._apply_schematics(tree)
            except Exception as ex:
                logger.error(
                    "Error in '%s' at node '%s' (schematic: %s)",
                    request.name,
                    tree.node_path(tree.cursor),
                    tree.schematic,
                )
                self._rollback(tree)
                self._fail(request, ex)
                return

        request.gameobject = self.world.get_gameobject(tree.get_entities()[0])
        self._in_flight.remove(request)
        logger.debug("Spawned '%s' (%d entities)", request.name, len(tree))
        request._finish(SpawnState.COMPLETE)

    def _create_entities(self, request: SpawnRequest, tree: SpawnTree) -> None:
        for index, node in enumerate(tree.nodes):
            tree.cursor = index
            gameobject = self.world.spawn_gameobject(name=node.name)
            tree.set_entity(index, gameobject.uid)

            parent_index = tree.parent_of(index)
            if parent_index is not None:
                parent_id = tree.entity_of(parent_index)
                assert parent_id is not None
                self.world.get_gameobject(parent_id).add_child(gameobject)
            elif request.parent is not None:
                request.parent.add_child(gameobject)

    def _apply_schematics(self, tree: SpawnTree) -> None:
        for index, node in enumerate(tree.nodes):
            tree.cursor = index
            for type_id, schematic in node.schematics.items():
                tree.schematic = type_id
                schematic.apply(
                    SchematicContext(
                        self.world, tree, index, type_id, self.assets, self.paths
                    )
                )
        tree.schematic = None

    def _rollback(self, tree: SpawnTree) -> None:
        for entity in reversed(tree.get_entities()):
            if self.world.has_gameobject(entity):
                self.world.destroy_gameobject(entity)

    def _fail(self, request: SpawnRequest, error: Exception) -> None:
        request.error = error
        if request in self._in_flight:
            self._in_flight.remove(request)
        logger.error("Failed to spawn '%s': %s", request.name, error)
        request._finish(SpawnState.FAILED)

    def _on_library_changed(self, names: List[str]) -> None:
        changed = set(names)
        for request in list(self._in_flight):
            if request.state != SpawnState.AWAITING_ASSETS:
                continue
            stale = [name for name in request.versions if name in changed]
            if stale:
                self._fail(request, StaleTemplateError(stale))
