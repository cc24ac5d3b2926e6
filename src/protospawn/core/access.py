"""
protospawn/core/access.py

Addressing of entities within the tree currently being spawned.

An EntityPath is written like a file path. Segments are separated by "/":

    /           start from the root of the tree (only as a leading "/")
    . or empty  stay on the current node
    ..          move to the parent
    name        first child with the given name
    @n          child at index n (negative values count from the last child)
    @n:name     n-th child with the given name (negative from the last child)
    ~n          sibling at offset n from the current node
    ~name       first sibling after the current node with the given name
    ~n:name     n-th sibling with the given name (negative searches backwards)

Paths are resolved against a SpawnTree only when a schematic is applied, once
every entity of the tree exists.
"""
from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any, Iterator, List, NamedTuple, Optional, Tuple

from pydantic_core import core_schema

from protospawn.errors import AmbiguousPathError, PathNotFoundError

if TYPE_CHECKING:
    from protospawn.core.spawn import SpawnTree

logger = logging.getLogger(__name__)


class AccessKind(enum.Enum):
    ROOT = "root"
    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"


class AccessOp(NamedTuple):
    """
    A single hop of an EntityPath

    Attributes
    ----------
    kind: AccessKind
        The direction of the hop
    index: int
        Child index, sibling offset, or name occurrence depending on the kind
    name: Optional[str]
        The name to filter by, if any
    explicit: bool
        True if the occurrence was written out by the author
    """

    kind: AccessKind
    index: int = 0
    name: Optional[str] = None
    explicit: bool = False


def _parse_int(text: str, source: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"Invalid number '{text}' in entity path '{source}'")


def _parse_segment(segment: str, source: str) -> Optional[AccessOp]:
    if segment in ("", "."):
        return None

    if segment == "..":
        return AccessOp(AccessKind.PARENT)

    if segment.startswith("@"):
        body = segment[1:]
        if ":" in body:
            number, name = body.split(":", 1)
            occurrence = _parse_int(number, source)
            if occurrence == 0 or not name:
                raise ValueError(f"Invalid child access '{segment}' in '{source}'")
            return AccessOp(AccessKind.CHILD, occurrence, name, True)
        return AccessOp(AccessKind.CHILD, _parse_int(body, source))

    if segment.startswith("~"):
        body = segment[1:]
        if ":" in body:
            number, name = body.split(":", 1)
            occurrence = _parse_int(number, source)
            if occurrence == 0 or not name:
                raise ValueError(f"Invalid sibling access '{segment}' in '{source}'")
            return AccessOp(AccessKind.SIBLING, occurrence, name, True)
        try:
            offset = int(body)
        except ValueError:
            if not body:
                raise ValueError(f"Empty sibling access in '{source}'")
            return AccessOp(AccessKind.SIBLING, 1, body)
        if offset == 0:
            raise ValueError(f"Sibling offset cannot be zero in '{source}'")
        return AccessOp(AccessKind.SIBLING, offset)

    return AccessOp(AccessKind.CHILD, 1, segment)


class EntityPath:
    """An immutable sequence of access operations addressing a node of a spawn tree"""

    __slots__ = "_ops", "_text"

    def __init__(self, ops: Tuple[AccessOp, ...], text: str = "") -> None:
        self._ops: Tuple[AccessOp, ...] = tuple(ops)
        self._text: str = text if text else self._format()

    @classmethod
    def parse(cls, value: Any) -> EntityPath:
        """Parse a path string, passing EntityPath instances through unchanged"""
        if isinstance(value, EntityPath):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Expected an entity path string but got {value!r}")

        ops: List[AccessOp] = []
        rest = value
        if rest.startswith("/"):
            ops.append(AccessOp(AccessKind.ROOT))
            rest = rest.lstrip("/")

        for segment in rest.split("/"):
            op = _parse_segment(segment.strip(), value)
            if op is not None:
                ops.append(op)

        return cls(tuple(ops), value)

    @classmethod
    def root(cls) -> EntityPath:
        return cls((AccessOp(AccessKind.ROOT),), "/")

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: Any
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @property
    def ops(self) -> Tuple[AccessOp, ...]:
        return self._ops

    @property
    def is_absolute(self) -> bool:
        return bool(self._ops) and self._ops[0].kind == AccessKind.ROOT

    def _format(self) -> str:
        parts: List[str] = []
        for op in self._ops:
            if op.kind == AccessKind.ROOT:
                parts.append("")
            elif op.kind == AccessKind.PARENT:
                parts.append("..")
            elif op.kind == AccessKind.CHILD:
                if op.name is None:
                    parts.append(f"@{op.index}")
                elif op.explicit:
                    parts.append(f"@{op.index}:{op.name}")
                else:
                    parts.append(op.name)
            elif op.name is None:
                parts.append(f"~{op.index}")
            elif op.explicit:
                parts.append(f"~{op.index}:{op.name}")
            else:
                parts.append(f"~{op.name}")

        if parts == [""]:
            return "/"
        return "/".join(parts) if parts else "."

    def __iter__(self) -> Iterator[AccessOp]:
        return iter(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, EntityPath):
            return self._ops == other._ops
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._ops)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._text!r})"


def _nth_match(candidates: List[int], occurrence: int) -> Optional[int]:
    """Select the n-th (1-based) candidate, counting from the end when negative"""
    if occurrence > 0 and occurrence <= len(candidates):
        return candidates[occurrence - 1]
    if occurrence < 0 and -occurrence <= len(candidates):
        return candidates[occurrence]
    return None


class EntityPathResolver:
    """
    Resolves EntityPaths to entity ids within a SpawnTree

    Attributes
    ----------
    strict: bool
        Raise AmbiguousPathError when a name lookup without an explicit
        occurrence matches more than one node
    """

    __slots__ = "strict"

    def __init__(self, strict: bool = False) -> None:
        self.strict: bool = strict

    def resolve(self, path: EntityPath, current: int, tree: SpawnTree) -> int:
        """
        Resolve a path to the entity created for the node it addresses

        Parameters
        ----------
        path: EntityPath
            The path to resolve
        current: int
            Pre-order index of the node the path is relative to
        tree: SpawnTree
            The tree being spawned

        Returns
        -------
        int
            The entity id of the addressed node

        Raises
        ------
        PathNotFoundError
            When no node matches, the node is not visible yet, or
            it has no entity
        AmbiguousPathError
            When strict and a name lookup matches several nodes
        """
        target = self.resolve_node(path, current, tree)

        if not self.is_visible(target, current, tree):
            raise PathNotFoundError(
                str(path),
                tree.node_path(current),
                "the addressed node is not processed yet",
            )

        entity = tree.entity_of(target)
        if entity is None:
            raise PathNotFoundError(
                str(path), tree.node_path(current), "the addressed node has no entity"
            )

        return entity

    def resolve_node(self, path: EntityPath, current: int, tree: SpawnTree) -> int:
        """Walk the path and return the pre-order index of the addressed node"""
        position = current

        for op in path:
            next_position = self._step(op, position, tree, path, current)
            if next_position is None:
                raise PathNotFoundError(str(path), tree.node_path(current))
            position = next_position

        return position

    @staticmethod
    def is_visible(target: int, current: int, tree: SpawnTree) -> bool:
        """Return True if the node's parent has been processed by the time current is"""
        parent = tree.parent_of(target)
        return parent is None or parent <= current

    def _step(
        self,
        op: AccessOp,
        position: int,
        tree: SpawnTree,
        path: EntityPath,
        current: int,
    ) -> Optional[int]:
        if op.kind == AccessKind.ROOT:
            return 0

        if op.kind == AccessKind.PARENT:
            return tree.parent_of(position)

        if op.kind == AccessKind.CHILD:
            children = tree.children_of(position)
            if op.name is None:
                if -len(children) <= op.index < len(children):
                    return children[op.index]
                return None
            matches = [c for c in children if tree.nodes[c].name == op.name]
            self._check_ambiguous(op, matches, path, tree, current)
            return _nth_match(matches, op.index)

        parent = tree.parent_of(position)
        if parent is None:
            return None
        siblings = tree.children_of(parent)
        offset = siblings.index(position)

        if op.name is None:
            index = offset + op.index
            if 0 <= index < len(siblings):
                return siblings[index]
            return None

        if op.index > 0:
            candidates = siblings[offset + 1 :]
            matches = [s for s in candidates if tree.nodes[s].name == op.name]
            self._check_ambiguous(op, matches, path, tree, current)
            return _nth_match(matches, op.index)

        candidates = siblings[:offset]
        matches = [s for s in candidates if tree.nodes[s].name == op.name]
        return _nth_match(matches, op.index)

    def _check_ambiguous(
        self,
        op: AccessOp,
        matches: List[int],
        path: EntityPath,
        tree: SpawnTree,
        current: int,
    ) -> None:
        if self.strict and not op.explicit and len(matches) > 1:
            raise AmbiguousPathError(str(path), tree.node_path(current), len(matches))
