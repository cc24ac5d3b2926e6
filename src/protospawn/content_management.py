"""
protospawn/content_management.py

Storage for loaded prototypes.
"""
from __future__ import annotations

import logging
import posixpath
import re
from collections import defaultdict
from typing import (
    TYPE_CHECKING,
    Callable,
    DefaultDict,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
)

from protospawn.config import ProtoConfig
from protospawn.core.prototype import Prototype
from protospawn.errors import DuplicateNameError, TemplateNotFoundError

if TYPE_CHECKING:
    from protospawn.core.templates import MergedPrototype

logger = logging.getLogger(__name__)

ChangeListener = Callable[[List[str]], None]


class PrototypeLibrary:
    """
    Collection of every loaded prototype

    Prototypes are keyed by their globally unique name and indexed by the
    path of the file they were loaded from.

    Attributes
    ----------
    config: ProtoConfig
        Settings used to interpret template references
    _prototypes: Dict[str, Prototype]
        Prototypes by name
    _paths: Dict[str, str]
        Prototype names by normalized source path
    _versions: Dict[str, int]
        Incremented every time a prototype is added, reloaded, or removed
    _resolved: Dict[str, MergedPrototype]
        Cached template resolutions by prototype name
    _dependents: DefaultDict[str, Set[str]]
        Names of the prototypes that use a prototype as a template
    _listeners: List[ChangeListener]
        Called with the names of invalidated prototypes on every change
    """

    __slots__ = (
        "config",
        "_prototypes",
        "_paths",
        "_versions",
        "_resolved",
        "_dependents",
        "_listeners",
    )

    def __init__(self, config: Optional[ProtoConfig] = None) -> None:
        self.config: ProtoConfig = config if config else ProtoConfig()
        self._prototypes: Dict[str, Prototype] = {}
        self._paths: Dict[str, str] = {}
        self._versions: Dict[str, int] = {}
        self._resolved: Dict[str, MergedPrototype] = {}
        self._dependents: DefaultDict[str, Set[str]] = defaultdict(set)
        self._listeners: List[ChangeListener] = []

    def __contains__(self, name: str) -> bool:
        return name in self._prototypes

    def __iter__(self) -> Iterator[Prototype]:
        return iter(list(self._prototypes.values()))

    def __len__(self) -> int:
        return len(self._prototypes)

    def add(self, prototype: Prototype) -> None:
        """
        Register a new prototype

        Raises
        ------
        DuplicateNameError
            If a prototype with the same name is already loaded
        """
        if prototype.name in self._prototypes:
            raise DuplicateNameError(
                prototype.name,
                prototype.path,
                self._prototypes[prototype.name].path,
            )

        self._store(prototype)
        logger.debug("Added prototype '%s'", prototype.name)

    def reload(self, prototype: Prototype) -> List[str]:
        """
        Replace a loaded prototype with new data

        Returns
        -------
        List[str]
            Names of every prototype invalidated by the change
        """
        existing = self._prototypes.get(prototype.name)

        if existing is None and prototype.path:
            previous_name = self._paths.get(self._normalize(prototype.path))
            if previous_name is not None:
                existing = self._prototypes[previous_name]

        if existing is not None and existing.name != prototype.name:
            invalidated = self.remove(existing.name)
            self._store(prototype)
            return invalidated + self._invalidate(prototype.name)

        if existing is not None and existing.path and existing.path != prototype.path:
            self._paths.pop(self._normalize(existing.path), None)

        self._store(prototype)
        logger.info("Reloaded prototype '%s'", prototype.name)
        return self._invalidate(prototype.name)

    def remove(self, name: str) -> List[str]:
        """Remove a prototype, invalidating everything that depends on it"""
        prototype = self._prototypes.pop(name)
        if prototype.path:
            self._paths.pop(self._normalize(prototype.path), None)
        self._versions[name] = self._versions.get(name, 0) + 1
        logger.debug("Removed prototype '%s'", name)
        return self._invalidate(name)

    def get(self, name: str) -> Prototype:
        """Get a prototype by name"""
        return self._prototypes[name]

    def get_by_path(self, path: str) -> Optional[Prototype]:
        """Get the prototype loaded from the given path"""
        name = self._paths.get(self._normalize(path))
        return self._prototypes[name] if name is not None else None

    def get_all(self) -> List[Prototype]:
        return list(self._prototypes.values())

    def get_matching(self, *name_patterns: str) -> List[Prototype]:
        """Get all prototypes with names that match the given regex strings"""
        return [
            prototype
            for name, prototype in self._prototypes.items()
            if any(re.match(pattern, name) for pattern in name_patterns)
        ]

    def is_registered(self, prototype: Prototype) -> bool:
        """Return True if this exact prototype instance is stored in the library"""
        return self._prototypes.get(prototype.name) is prototype

    def version(self, name: str) -> int:
        return self._versions.get(name, 0)

    def versions(self, names: Iterable[str]) -> Dict[str, int]:
        return {name: self.version(name) for name in names}

    def resolve_reference(self, reference: str, owner: Prototype) -> Prototype:
        """
        Find the prototype a template or child reference points to

        Parameters
        ----------
        reference: str
            A prototype name or a path to a prototype file
        owner: Prototype
            The prototype containing the reference

        Returns
        -------
        Prototype
            The referenced prototype

        Raises
        ------
        TemplateNotFoundError
            If nothing matches the reference
        """
        if reference in self._prototypes:
            return self._prototypes[reference]

        if owner.path is not None or reference.startswith("/"):
            for candidate in self._candidate_paths(reference, owner.path):
                name = self._paths.get(candidate)
                if name is not None:
                    return self._prototypes[name]

        raise TemplateNotFoundError(reference, owner.name)

    def add_dependent(self, template: str, dependent: str) -> None:
        """Record that a prototype uses another as a template"""
        if template != dependent:
            self._dependents[template].add(dependent)

    def get_dependents(self, name: str) -> Set[str]:
        return set(self._dependents.get(name, set()))

    def get_resolved(self, name: str) -> Optional[MergedPrototype]:
        return self._resolved.get(name)

    def cache_resolved(self, name: str, merged: MergedPrototype) -> None:
        self._resolved[name] = merged

    def subscribe_changed(self, listener: ChangeListener) -> None:
        """Call the listener with invalidated prototype names after every change"""
        self._listeners.append(listener)

    def unsubscribe_changed(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _store(self, prototype: Prototype) -> None:
        self._prototypes[prototype.name] = prototype
        self._versions[prototype.name] = self._versions.get(prototype.name, 0) + 1
        if prototype.path:
            self._paths[self._normalize(prototype.path)] = prototype.name

    def _invalidate(self, name: str) -> List[str]:
        invalidated: List[str] = []
        pending: List[str] = [name]
        seen: Set[str] = set()

        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            invalidated.append(current)
            self._resolved.pop(current, None)
            pending.extend(sorted(self._dependents.get(current, set())))

        for listener in list(self._listeners):
            listener(invalidated)

        return invalidated

    def _candidate_paths(self, reference: str, owner_path: Optional[str]) -> List[str]:
        if reference.startswith("/"):
            base = self._normalize(reference)
        else:
            directory = posixpath.dirname(owner_path) if owner_path else ""
            base = self._normalize(posixpath.join(directory, reference))

        candidates = [base]

        if self.config.match_extension(base) is None and owner_path:
            extension = self.config.match_extension(owner_path)
            if extension:
                candidates.insert(0, f"{base}.{extension}")

        return candidates

    @staticmethod
    def _normalize(path: str) -> str:
        normalized = posixpath.normpath(path.replace("\\", "/")).lstrip("/")
        return "" if normalized == "." else normalized
