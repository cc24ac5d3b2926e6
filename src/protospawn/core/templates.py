"""
protospawn/core/templates.py

Flattens the template chain of a prototype into a single set of schematics and
an ordered list of inherited children.

Priority follows the pre-order of the template traversal: the prototype itself,
then its first template (before that template's own templates), then its second
template, and so on. Children are collected in post-order, so a template's
children come before the children of the prototype that inherits from it.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ordered_set import OrderedSet

from protospawn.config import ProtoConfig
from protospawn.core.cycles import CycleChecker, CycleKind
from protospawn.core.prototype import ChildSpec, Prototype
from protospawn.core.schematics import ISchematic, SchematicRegistry

if TYPE_CHECKING:
    from protospawn.content_management import PrototypeLibrary

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class InheritedChild:
    """
    A child entry together with the prototype that declared it

    Attributes
    ----------
    spec: ChildSpec
        The child entry
    owner: Prototype
        The prototype whose children list contains the entry
    index: int
        Position of the entry within the owner's children
    """

    spec: ChildSpec
    owner: Prototype
    index: int


@dataclasses.dataclass
class MergedPrototype:
    """
    The result of resolving a prototype's templates

    Attributes
    ----------
    name: str
        Name of the resolved prototype
    path: Optional[str]
        Source path of the resolved prototype
    schematics: Dict[str, ISchematic]
        Final schematic per type, in application order
    children: List[InheritedChild]
        Children from every template followed by the prototype's own
    prototypes: OrderedSet[str]
        Names of every contributing prototype, highest priority first
    """

    name: str
    path: Optional[str]
    schematics: Dict[str, ISchematic]
    children: List[InheritedChild]
    prototypes: OrderedSet


class _Frame:
    __slots__ = "prototype", "index", "pushed"

    def __init__(self, prototype: Prototype, pushed: bool) -> None:
        self.prototype: Prototype = prototype
        self.index: int = 0
        self.pushed: bool = pushed


class TemplateResolver:
    """
    Resolves template chains against a PrototypeLibrary

    Attributes
    ----------
    library: PrototypeLibrary
        Where template references are looked up and results are cached
    registry: SchematicRegistry
        Used to instantiate and merge schematics
    config: ProtoConfig
        Controls the response to cycles
    """

    __slots__ = "library", "registry", "config"

    def __init__(
        self,
        library: PrototypeLibrary,
        registry: SchematicRegistry,
        config: Optional[ProtoConfig] = None,
    ) -> None:
        self.library: PrototypeLibrary = library
        self.registry: SchematicRegistry = registry
        self.config: ProtoConfig = config if config else ProtoConfig()

    def new_checker(self, root: str) -> CycleChecker:
        return CycleChecker(root, self.config.on_cycle)

    def resolve(
        self, prototype: Prototype, checker: Optional[CycleChecker] = None
    ) -> MergedPrototype:
        """
        Resolve the templates of a prototype

        Parameters
        ----------
        prototype: Prototype
            The prototype to resolve
        checker: CycleChecker, optional
            The cycle checker of an enclosing resolution. The prototype
            itself must already be on it (or be its root).

        Returns
        -------
        MergedPrototype
            The flattened prototype

        Raises
        ------
        TemplateNotFoundError
            When a template reference does not resolve
        CycleDetectedError
            When the templates form a loop
        UnknownSchematicTypeError, DeserializeFailedError, DuplicateSchematicError
            When schematics cannot be built or merged
        """
        registered = self.library.is_registered(prototype)

        if registered:
            cached = self.library.get_resolved(prototype.name)
            if cached is not None and (
                checker is None
                or checker.check_closure(prototype.name, cached.prototypes)
            ):
                return cached

        if checker is None:
            checker = self.new_checker(prototype.name)

        ignored = checker.ignored
        order = self._traverse(prototype, checker)

        merged = MergedPrototype(
            name=prototype.name,
            path=prototype.path,
            schematics=self._merge_schematics(order),
            children=self._collect_children(order),
            prototypes=OrderedSet(p.name for p, _ in order),
        )

        # A skipped edge makes the result depend on the enclosing resolution
        if registered and checker.ignored == ignored:
            self.library.cache_resolved(prototype.name, merged)

        logger.debug(
            "Resolved '%s' from %s", prototype.name, list(merged.prototypes)
        )

        return merged

    def _traverse(
        self, prototype: Prototype, checker: CycleChecker
    ) -> List[Tuple[Prototype, int]]:
        """
        Walk the template graph depth first

        Returns each visited prototype in pre-order, paired with the
        position at which it finished (its post-order rank).
        """
        visited: OrderedSet = OrderedSet([prototype.name])
        order: List[Prototype] = [prototype]
        finished: Dict[int, int] = {}
        stack: List[_Frame] = [_Frame(prototype, False)]

        while stack:
            frame = stack[-1]
            owner = frame.prototype

            if frame.index < len(owner.templates):
                reference = owner.templates[frame.index]
                frame.index += 1

                template = self.library.resolve_reference(reference, owner)

                if owner.name:
                    self.library.add_dependent(template.name, owner.name)

                if checker.contains(template.name):
                    checker.try_push(template.name, CycleKind.TEMPLATE)
                    continue

                if template.name in visited:
                    continue

                if not checker.try_push(template.name, CycleKind.TEMPLATE):
                    continue

                visited.add(template.name)
                order.append(template)
                stack.append(_Frame(template, True))
                continue

            stack.pop()
            finished[id(owner)] = len(finished)
            if frame.pushed:
                checker.pop()

        return [(p, finished[id(p)]) for p in order]

    def _merge_schematics(
        self, order: List[Tuple[Prototype, int]]
    ) -> Dict[str, ISchematic]:
        merged: Dict[str, ISchematic] = {}

        for prototype, _ in reversed(order):
            for type_id, data in prototype.schematics.items():
                schematic = self.registry.instantiate(type_id, data, prototype.name)
                if type_id in merged:
                    merged[type_id] = self.registry.merge(
                        type_id, schematic, merged[type_id], prototype.name
                    )
                else:
                    merged[type_id] = schematic

        return merged

    @staticmethod
    def _collect_children(order: List[Tuple[Prototype, int]]) -> List[InheritedChild]:
        children: List[InheritedChild] = []

        for prototype, _ in sorted(order, key=lambda entry: entry[1]):
            children.extend(
                InheritedChild(spec, prototype, index)
                for index, spec in enumerate(prototype.children)
            )

        return children
