import json
from dataclasses import dataclass
from typing import Any, Dict

import pytest

from protospawn.core.ecs import (
    Component,
    ComponentNotFoundError,
    GameObjectNotFoundError,
    World,
)
from protospawn.exporter import export_to_json


@dataclass
class Position:
    x: int = 0
    y: int = 0


class Label(Component):
    def __init__(self, text: str) -> None:
        super().__init__()
        self.text: str = text

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text}


def test_spawn_and_query_components() -> None:
    world = World()
    gameobject = world.spawn_gameobject([Position(1, 2)], name="Marker")

    assert gameobject.name == "Marker"
    assert gameobject.exists
    assert gameobject.get_component(Position) == Position(1, 2)
    assert gameobject.has_component(Position)
    assert gameobject.try_component(Label) is None

    with pytest.raises(ComponentNotFoundError):
        gameobject.get_component(Label)

    gameobject.add_component(Label("hello"))
    assert gameobject.get_component(Label).gameobject == gameobject
    assert set(gameobject.get_component_types()) == {Position, Label}

    gameobject.remove_component(Position)
    assert not gameobject.has_component(Position)


def test_worlds_are_isolated() -> None:
    first = World()
    second = World()

    first.spawn_gameobject([Position(5, 5)])

    assert len(first.get_component(Position)) == 1
    assert second.get_component(Position) == []


def test_destroy_removes_descendants() -> None:
    world = World()
    parent = world.spawn_gameobject(name="Parent")
    child = world.spawn_gameobject([Position()], name="Child")
    grandchild = world.spawn_gameobject(name="Grandchild")
    parent.add_child(child)
    child.add_child(grandchild)

    child.destroy()

    assert parent.children == []
    assert not grandchild.exists
    assert world.get_gameobjects() == [parent]

    with pytest.raises(GameObjectNotFoundError):
        world.get_gameobject(child.uid)


def test_clear() -> None:
    world = World()
    root = world.spawn_gameobject()
    root.add_child(world.spawn_gameobject())
    world.spawn_gameobject()

    world.clear()

    assert len(world) == 0


def test_export_to_json() -> None:
    world = World()
    parent = world.spawn_gameobject([Label("root")], name="Parent")
    child = world.spawn_gameobject([Position(3, 4)], name="Child")
    parent.add_child(child)

    data = json.loads(export_to_json(world))

    exported_child = data["gameobjects"][str(child.uid)]
    assert exported_child["name"] == "Child"
    assert exported_child["parent"] == parent.uid
    assert exported_child["components"] == {"Position": {"x": 3, "y": 4}}
    assert data["gameobjects"][str(parent.uid)]["components"] == {
        "Label": {"text": "root"}
    }
