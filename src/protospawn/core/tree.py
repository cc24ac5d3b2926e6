"""
protospawn/core/tree.py

Expands a resolved prototype into the tree of entity nodes that will be spawned.

Children are expanded with an explicit stack. Named children are resolved
through the TemplateResolver with the same cycle checker as their parent, so
loops through children are detected just like loops through templates.
"""
from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from ordered_set import OrderedSet

from protospawn.core.cycles import CycleChecker, CycleKind
from protospawn.core.prototype import Prototype
from protospawn.core.schematics import ISchematic, SchematicRegistry
from protospawn.core.templates import InheritedChild, MergedPrototype, TemplateResolver

if TYPE_CHECKING:
    from protospawn.content_management import PrototypeLibrary

logger = logging.getLogger(__name__)


class EntityNode:
    """
    One entity of a tree that is about to be spawned

    Attributes
    ----------
    name: str
        Name of the prototype the node was built from
    merge_key: Optional[str]
        Key used to fuse sibling nodes
    schematics: Dict[str, ISchematic]
        The node's own copies of its schematics, in application order
    prototypes: OrderedSet[str]
        Names of every prototype that contributed to the node
    children: List[EntityNode]
        Child nodes in spawn order
    """

    __slots__ = "name", "merge_key", "schematics", "prototypes", "children"

    def __init__(
        self,
        name: str,
        schematics: Optional[Dict[str, ISchematic]] = None,
        prototypes: Optional[OrderedSet] = None,
        merge_key: Optional[str] = None,
    ) -> None:
        self.name: str = name
        self.merge_key: Optional[str] = merge_key
        self.schematics: Dict[str, ISchematic] = schematics if schematics else {}
        self.prototypes: OrderedSet = prototypes if prototypes else OrderedSet([name])
        self.children: List[EntityNode] = []

    @classmethod
    def from_merged(
        cls, merged: MergedPrototype, merge_key: Optional[str] = None
    ) -> EntityNode:
        """Create a node holding copies of a merged prototype's schematics"""
        return cls(
            name=merged.name,
            schematics=copy.deepcopy(merged.schematics),
            prototypes=OrderedSet(merged.prototypes),
            merge_key=merge_key,
        )

    def find_child(self, merge_key: str) -> Optional[EntityNode]:
        """Return the child with the given merge key, if any"""
        for child in self.children:
            if child.merge_key == merge_key:
                return child
        return None

    def append_child(self, node: EntityNode, registry: SchematicRegistry) -> EntityNode:
        """
        Add a child, fusing it into an existing child with the same merge key

        Returns
        -------
        EntityNode
            The node that now represents the child
        """
        if node.merge_key:
            existing = self.find_child(node.merge_key)
            if existing is not None:
                existing.absorb(node, registry)
                return existing

        self.children.append(node)
        return node

    def absorb(self, other: EntityNode, registry: SchematicRegistry) -> None:
        """Fold another node into this one. This node's schematics take priority."""
        for type_id, schematic in other.schematics.items():
            if type_id in self.schematics:
                self.schematics[type_id] = registry.merge(
                    type_id, self.schematics[type_id], schematic, self.name
                )
            else:
                self.schematics[type_id] = schematic

        self.prototypes |= other.prototypes

        for child in other.children:
            self.append_child(child, registry)

        logger.debug(
            "Fused %r into %r (key %r)", other.name, self.name, self.merge_key
        )

    def iter_preorder(self) -> Iterator[EntityNode]:
        stack: List[EntityNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_preorder())

    def __repr__(self) -> str:
        return "{}(name={}, merge_key={}, schematics={}, children={})".format(
            self.__class__.__name__,
            self.name,
            self.merge_key,
            list(self.schematics.keys()),
            [c.name for c in self.children],
        )


class _Frame:
    __slots__ = "target", "children", "index", "pushed"

    def __init__(
        self, target: EntityNode, children: List[InheritedChild], pushed: bool
    ) -> None:
        self.target: EntityNode = target
        self.children: List[InheritedChild] = children
        self.index: int = 0
        self.pushed: bool = pushed


class HierarchyBuilder:
    """
    Builds EntityNode trees from prototypes

    Attributes
    ----------
    library: PrototypeLibrary
        Where child references are looked up
    resolver: TemplateResolver
        Resolves each child's templates
    """

    __slots__ = "library", "resolver"

    def __init__(self, library: PrototypeLibrary, resolver: TemplateResolver) -> None:
        self.library: PrototypeLibrary = library
        self.resolver: TemplateResolver = resolver

    @property
    def registry(self) -> SchematicRegistry:
        return self.resolver.registry

    def build_prototype(self, prototype: Prototype) -> EntityNode:
        """Resolve a prototype and build its tree"""
        checker = self.resolver.new_checker(prototype.name)
        merged = self.resolver.resolve(prototype, checker)
        return self.build(merged, checker)

    def build(
        self, merged: MergedPrototype, checker: Optional[CycleChecker] = None
    ) -> EntityNode:
        """
        Expand a merged prototype into a tree of nodes

        Parameters
        ----------
        merged: MergedPrototype
            The resolved root prototype
        checker: CycleChecker, optional
            Cycle checker rooted at the merged prototype

        Returns
        -------
        EntityNode
            The root node of a freshly built tree

        Raises
        ------
        TemplateNotFoundError
            When a named child does not exist
        CycleDetectedError
            When children or templates form a loop
        """
        if checker is None:
            checker = self.resolver.new_checker(merged.name)

        root = EntityNode.from_merged(merged)
        stack: List[_Frame] = [_Frame(root, merged.children, False)]

        while stack:
            frame = stack[-1]

            if frame.index >= len(frame.children):
                stack.pop()
                if frame.pushed:
                    checker.pop()
                continue

            inherited = frame.children[frame.index]
            frame.index += 1
            spec = inherited.spec

            if isinstance(spec.prototype, Prototype):
                child_merged = self.resolver.resolve(
                    self._inline_prototype(inherited), checker
                )
                pushed = False
            else:
                prototype = self.library.resolve_reference(
                    spec.prototype, inherited.owner
                )
                if not checker.try_push(prototype.name, CycleKind.CHILD):
                    continue
                child_merged = self.resolver.resolve(prototype, checker)
                pushed = True

            node = EntityNode.from_merged(child_merged, spec.merge_key)
            target = frame.target.append_child(node, self.registry)
            stack.append(_Frame(target, child_merged.children, pushed))

        logger.debug("Built tree for '%s' with %d node(s)", merged.name, len(root))

        return root

    @staticmethod
    def _inline_prototype(inherited: InheritedChild) -> Prototype:
        inline = inherited.spec.prototype
        assert isinstance(inline, Prototype)
        return inline.model_copy(
            update={
                "name": inline.name
                if inline.name
                else f"{inherited.owner.name}.{inherited.index}",
                "path": inline.path if inline.path else inherited.owner.path,
            }
        )
