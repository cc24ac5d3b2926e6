"""
protospawn/errors.py

Exceptions raised while loading, resolving, and spawning prototypes.

Every error is scoped to a single load or spawn request. None of them should
take down the running simulation.
"""
from __future__ import annotations

from typing import List, Optional, Sequence


class PrototypeError(Exception):
    """Base class for all prototype-related errors

    Attributes
    ----------
    message: str
        An error message
    """

    __slots__ = "message"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return "{}(message={!r})".format(self.__class__.__name__, self.message)


class PrototypeLoadError(PrototypeError):
    """Exception raised when a prototype file cannot be read or parsed

    Attributes
    ----------
    path: str
        The path of the file being loaded
    reason: str
        Why loading failed
    """

    __slots__ = "path", "reason"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not load prototype file '{path}': {reason}")
        self.path: str = path
        self.reason: str = reason


class TemplateNotFoundError(PrototypeError):
    """Exception raised when a template or child reference does not resolve

    Attributes
    ----------
    reference: str
        The reference as written in the prototype
    referrer: str
        The name of the prototype containing the reference
    """

    __slots__ = "reference", "referrer"

    def __init__(self, reference: str, referrer: str = "") -> None:
        if referrer:
            message = (
                f"Could not find prototype '{reference}' referenced by '{referrer}'."
            )
        else:
            message = f"Could not find prototype '{reference}'."
        super().__init__(message)
        self.reference: str = reference
        self.referrer: str = referrer

    def __repr__(self) -> str:
        return "{}(reference={}, referrer={})".format(
            self.__class__.__name__, self.reference, self.referrer
        )


class CycleDetectedError(PrototypeError):
    """Exception raised when templates or children form a loop

    Attributes
    ----------
    cycle: List[str]
        Names of the prototypes in the cycle, starting and ending with
        the prototype that closed it
    description: str
        Human-readable description of the cycle
    """

    __slots__ = "cycle", "description"

    def __init__(self, cycle: Sequence[str], description: str) -> None:
        super().__init__(f"Found prototype cycle: {description}")
        self.cycle: List[str] = list(cycle)
        self.description: str = description

    def __repr__(self) -> str:
        return "{}(cycle={})".format(self.__class__.__name__, self.cycle)


class DuplicateNameError(PrototypeError):
    """Exception raised when two loaded prototypes share a name

    Attributes
    ----------
    name: str
        The duplicated name
    path: Optional[str]
        Source path of the prototype being added
    existing: Optional[str]
        Source path of the prototype already registered
    """

    __slots__ = "name", "path", "existing"

    def __init__(
        self, name: str, path: Optional[str] = None, existing: Optional[str] = None
    ) -> None:
        super().__init__(
            f"Attempted to add prototype '{name}' ({path or '<memory>'}), but one "
            f"already exists with this name ({existing or '<memory>'})."
        )
        self.name: str = name
        self.path: Optional[str] = path
        self.existing: Optional[str] = existing


class UnknownSchematicTypeError(PrototypeError):
    """Exception raised when a prototype uses an unregistered schematic type

    Attributes
    ----------
    type_id: str
        The schematic type identifier
    prototype: str
        The prototype that declared the schematic
    """

    __slots__ = "type_id", "prototype"

    def __init__(self, type_id: str, prototype: str = "") -> None:
        super().__init__(
            f"Unknown schematic type '{type_id}'"
            + (f" in prototype '{prototype}'." if prototype else ".")
        )
        self.type_id: str = type_id
        self.prototype: str = prototype


class DeserializeFailedError(PrototypeError):
    """Exception raised when schematic data does not fit its type

    Attributes
    ----------
    type_id: str
        The schematic type identifier
    prototype: str
        The prototype that declared the schematic
    reason: str
        The underlying validation message
    """

    __slots__ = "type_id", "prototype", "reason"

    def __init__(self, type_id: str, prototype: str, reason: str) -> None:
        super().__init__(
            f"Could not deserialize schematic '{type_id}'"
            + (f" in prototype '{prototype}'" if prototype else "")
            + f": {reason}"
        )
        self.type_id: str = type_id
        self.prototype: str = prototype
        self.reason: str = reason


class DuplicateSchematicError(PrototypeError):
    """Exception raised when a schematic type that rejects duplicates is inherited twice

    Attributes
    ----------
    type_id: str
        The schematic type identifier
    prototype: str
        The prototype where the duplicate was found
    """

    __slots__ = "type_id", "prototype"

    def __init__(self, type_id: str, prototype: str = "") -> None:
        super().__init__(
            f"Schematic '{type_id}' does not allow duplicates"
            + (f" but was declared more than once for '{prototype}'." if prototype else ".")
        )
        self.type_id: str = type_id
        self.prototype: str = prototype


class PathNotFoundError(PrototypeError):
    """Exception raised when an entity path does not address a spawned node

    Attributes
    ----------
    path: str
        The entity path that failed to resolve
    node: str
        The tree path of the node the lookup started from
    """

    __slots__ = "path", "node"

    def __init__(self, path: str, node: str = "", reason: str = "") -> None:
        message = f"Could not find entity at path '{path}'"
        if node:
            message += f" from '{node}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.path: str = path
        self.node: str = node


class AmbiguousPathError(PrototypeError):
    """Exception raised when a strict entity path lookup matches several nodes

    Attributes
    ----------
    path: str
        The entity path
    node: str
        The tree path of the node the lookup started from
    matches: int
        How many nodes matched
    """

    __slots__ = "path", "node", "matches"

    def __init__(self, path: str, node: str, matches: int) -> None:
        super().__init__(
            f"Entity path '{path}' from '{node}' is ambiguous ({matches} matches)."
        )
        self.path: str = path
        self.node: str = node
        self.matches: int = matches


class AssetLoadFailedError(PrototypeError):
    """Exception raised when an asset a prototype depends on fails to load

    Attributes
    ----------
    path: str
        The asset path
    reason: str
        Why the load failed
    """

    __slots__ = "path", "reason"

    def __init__(self, path: str, reason: str = "") -> None:
        super().__init__(
            f"Asset '{path}' failed to load" + (f": {reason}" if reason else ".")
        )
        self.path: str = path
        self.reason: str = reason


class StaleTemplateError(PrototypeError):
    """Exception raised when prototype data changes under an in-flight spawn

    Attributes
    ----------
    prototypes: List[str]
        The names of the prototypes that changed
    """

    __slots__ = "prototypes"

    def __init__(self, prototypes: Sequence[str]) -> None:
        super().__init__(
            "Prototype data changed during spawn: {}".format(
                ", ".join(f"'{p}'" for p in prototypes)
            )
        )
        self.prototypes: List[str] = list(prototypes)
