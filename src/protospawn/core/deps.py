"""
protospawn/core/deps.py

Collects the assets and entity paths a resolved entity tree needs before it
can be spawned.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, List, Union

from ordered_set import OrderedSet

from protospawn.core.access import EntityPath
from protospawn.core.assets import AssetRef

if TYPE_CHECKING:
    from protospawn.core.tree import EntityNode

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class DependencySet:
    """
    Everything a tree needs to exist before its schematics can be applied

    Attributes
    ----------
    assets: OrderedSet[AssetRef]
        Assets that must be loaded
    entity_paths: OrderedSet[EntityPath]
        Entity paths resolved at apply time
    """

    assets: OrderedSet = dataclasses.field(default_factory=OrderedSet)
    entity_paths: OrderedSet = dataclasses.field(default_factory=OrderedSet)

    @property
    def asset_paths(self) -> List[str]:
        return list(OrderedSet(ref.path for ref in self.assets))

    def __bool__(self) -> bool:
        return bool(self.assets) or bool(self.entity_paths)


class DependenciesBuilder:
    """Passed to ISchematic.preload_dependencies to record what a schematic needs"""

    __slots__ = "_deps", "prototype"

    def __init__(self, deps: DependencySet, prototype: str = "") -> None:
        self._deps: DependencySet = deps
        self.prototype: str = prototype

    def add_asset(self, asset: Union[AssetRef, str], kind: str = "") -> AssetRef:
        """Declare an asset to be loaded before spawning"""
        ref = asset if isinstance(asset, AssetRef) else AssetRef(asset, kind)
        self._deps.assets.add(ref)
        return ref

    def add_entity_path(self, path: Union[EntityPath, str]) -> EntityPath:
        """Declare an entity path resolved when the schematic is applied"""
        entity_path = EntityPath.parse(path)
        self._deps.entity_paths.add(entity_path)
        return entity_path


class DependencyCollector:
    """Walks an entity tree and aggregates the dependencies of every schematic"""

    def collect(self, root: EntityNode) -> DependencySet:
        """
        Collect dependencies in pre-order without modifying the tree

        Parameters
        ----------
        root: EntityNode
            The root of a built entity tree

        Returns
        -------
        DependencySet
            The union of every schematic's dependencies
        """
        deps = DependencySet()
        stack: List[EntityNode] = [root]

        while stack:
            node = stack.pop()
            builder = DependenciesBuilder(deps, node.name)
            for schematic in node.schematics.values():
                schematic.preload_dependencies(builder)
            stack.extend(reversed(node.children))

        logger.debug(
            "Collected %d asset(s) and %d entity path(s) for '%s'",
            len(deps.assets),
            len(deps.entity_paths),
            root.name,
        )

        return deps
