"""
protospawn/core/cycles.py

Detection of loops between prototypes.

Prototypes reference each other in two ways: as templates ("inherits") and as
children ("contains"). Both kinds of edges are tracked on one stack so that
loops mixing the two are caught as well.
"""
from __future__ import annotations

import enum
import logging
from typing import Iterable, List, Tuple

from ordered_set import OrderedSet

from protospawn.config import CycleResponse
from protospawn.errors import CycleDetectedError

logger = logging.getLogger(__name__)


class CycleKind(enum.Enum):
    TEMPLATE = "inherits"
    CHILD = "contains"


class CycleChecker:
    """
    Tracks the chain of prototypes currently being resolved

    Attributes
    ----------
    root: str
        Name of the prototype the resolution started from
    response: CycleResponse
        Whether a detected cycle raises or is skipped
    ignored: int
        Number of cycles skipped so far under CycleResponse.IGNORE
    _ancestry: OrderedSet[str]
        Names currently on the stack, in push order
    _kinds: List[CycleKind]
        Edge kind for each entry of the ancestry
    """

    __slots__ = "root", "response", "ignored", "_ancestry", "_kinds"

    def __init__(self, root: str, response: CycleResponse = CycleResponse.CANCEL) -> None:
        self.root: str = root
        self.response: CycleResponse = response
        self.ignored: int = 0
        self._ancestry: OrderedSet = OrderedSet()
        self._kinds: List[CycleKind] = []

    @property
    def depth(self) -> int:
        return len(self._ancestry)

    def contains(self, name: str) -> bool:
        """Return True if the name is the root or on the stack"""
        return name == self.root or name in self._ancestry

    def try_push(self, name: str, kind: CycleKind) -> bool:
        """
        Push a prototype onto the stack

        Parameters
        ----------
        name: str
            The prototype being entered
        kind: CycleKind
            How it is referenced by the prototype on top of the stack

        Returns
        -------
        bool
            True if pushed. False if it closes a cycle and cycles are ignored.

        Raises
        ------
        CycleDetectedError
            If it closes a cycle and cycles cancel the request
        """
        if self.contains(name):
            return self._report(self._describe(name, kind))

        self._ancestry.add(name)
        self._kinds.append(kind)
        return True

    def pop(self) -> None:
        self._ancestry.pop()
        self._kinds.pop()

    def check_closure(self, name: str, closure: Iterable[str]) -> bool:
        """
        Check the already-resolved closure of a pushed prototype against the stack

        Used when a resolution is reused from a cache, so the prototypes it
        pulled in are not pushed one by one.

        Returns
        -------
        bool
            True if none of the names are on the stack
        """
        for member in closure:
            if member != name and self.contains(member):
                return self._report(self._describe(member, CycleKind.TEMPLATE))
        return True

    def _describe(self, name: str, kind: CycleKind) -> Tuple[List[str], str]:
        entries: List[Tuple[str, CycleKind]] = list(zip(self._ancestry, self._kinds))
        entries.append((name, kind))

        if name == self.root:
            start = self.root
        else:
            start_index = self._ancestry.index(name)
            start = name
            entries = entries[start_index + 1 :]

        cycle = [start]
        description = '"{}"'.format(start)
        for index, (member, edge) in enumerate(entries):
            cycle.append(member)
            prefix = " " if index == 0 else " which "
            description += '{}{} "{}"'.format(prefix, edge.value, member)

        return cycle, description

    def _report(self, found: Tuple[List[str], str]) -> bool:
        cycle, description = found
        if self.response == CycleResponse.IGNORE:
            logger.warning("Ignoring prototype cycle: %s", description)
            self.ignored += 1
            return False
        raise CycleDetectedError(cycle, description)
