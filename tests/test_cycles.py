import logging

import pytest

from protospawn.config import CycleResponse
from protospawn.core.cycles import CycleChecker, CycleKind
from protospawn.errors import CycleDetectedError


def test_push_and_pop() -> None:
    checker = CycleChecker("Root")

    assert checker.try_push("A", CycleKind.TEMPLATE)
    assert checker.try_push("B", CycleKind.CHILD)
    assert checker.depth == 2
    assert checker.contains("Root") and checker.contains("B")

    checker.pop()

    assert not checker.contains("B")
    assert checker.try_push("B", CycleKind.TEMPLATE)


def test_cycle_not_starting_at_root() -> None:
    checker = CycleChecker("Root")
    checker.try_push("A", CycleKind.CHILD)
    checker.try_push("B", CycleKind.TEMPLATE)

    with pytest.raises(CycleDetectedError) as exc_info:
        checker.try_push("A", CycleKind.CHILD)

    assert exc_info.value.cycle == ["A", "B", "A"]
    assert exc_info.value.description == '"A" inherits "B" which contains "A"'


def test_ignore_logs_a_warning(caplog) -> None:
    checker = CycleChecker("Root", CycleResponse.IGNORE)
    checker.try_push("A", CycleKind.TEMPLATE)

    with caplog.at_level(logging.WARNING):
        assert not checker.try_push("Root", CycleKind.TEMPLATE)

    assert '"Root" inherits "A" which inherits "Root"' in caplog.text
    assert checker.depth == 1


def test_check_closure() -> None:
    checker = CycleChecker("Root")
    checker.try_push("A", CycleKind.CHILD)

    assert checker.check_closure("A", ["A", "B", "C"])

    with pytest.raises(CycleDetectedError):
        checker.check_closure("A", ["A", "Root"])
