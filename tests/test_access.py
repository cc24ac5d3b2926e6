import pytest

from protospawn.core.access import AccessKind, EntityPath, EntityPathResolver
from protospawn.core.spawn import SpawnTree
from protospawn.core.tree import EntityNode
from protospawn.errors import AmbiguousPathError, PathNotFoundError


def node(name: str, *children: EntityNode) -> EntityNode:
    result = EntityNode(name)
    result.children.extend(children)
    return result


@pytest.fixture
def tree() -> SpawnTree:
    """
    Room(0)
      Door(1)
        Lock(2)
      Chest(3)
        Key(4)
          Gem(5)
      Door(6)
    """
    spawn_tree = SpawnTree(
        node(
            "Room",
            node("Door", node("Lock")),
            node("Chest", node("Key", node("Gem"))),
            node("Door"),
        )
    )

    for index in range(len(spawn_tree)):
        spawn_tree.set_entity(index, 100 + index)

    return spawn_tree


def resolve(path: str, current: int, spawn_tree: SpawnTree, strict: bool = False):
    return EntityPathResolver(strict).resolve(EntityPath.parse(path), current, spawn_tree)


def test_parse_segments() -> None:
    path = EntityPath.parse("../../Lock")

    assert [op.kind for op in path] == [
        AccessKind.PARENT,
        AccessKind.PARENT,
        AccessKind.CHILD,
    ]
    assert path.ops[2].name == "Lock"
    assert str(path) == "../../Lock"
    assert not path.is_absolute


def test_parse_absolute_and_indexed() -> None:
    path = EntityPath.parse("/@-1:Door/~2")

    assert path.is_absolute
    assert path.ops[1].index == -1
    assert path.ops[1].explicit
    assert path.ops[2].kind == AccessKind.SIBLING
    assert path.ops[2].index == 2


def test_equivalent_paths_are_equal() -> None:
    assert EntityPath.parse("Chest/Key") == EntityPath.parse("./Chest//Key/")
    assert len({EntityPath.parse("a/b"), EntityPath.parse("a/./b")}) == 1
    assert EntityPath.root() == EntityPath.parse("/")


@pytest.mark.parametrize("text", ["~0", "@x", "@0:Door", "~", "~1:"])
def test_invalid_paths(text: str) -> None:
    with pytest.raises(ValueError):
        EntityPath.parse(text)


def test_resolve_relative_path(tree: SpawnTree) -> None:
    assert resolve("../../Door", 4, tree) == 101
    assert resolve("..", 2, tree) == 101
    assert resolve(".", 3, tree) == 103


def test_absolute_path_ignores_current_node(tree: SpawnTree) -> None:
    assert resolve("/", 5, tree) == 100
    assert resolve("/Chest/Key", 5, tree) == 104


def test_parent_of_root_fails(tree: SpawnTree) -> None:
    with pytest.raises(PathNotFoundError):
        resolve("..", 0, tree)


def test_child_index_and_occurrence(tree: SpawnTree) -> None:
    assert resolve("/@0", 4, tree) == 101
    assert resolve("/@-1", 4, tree) == 106
    assert resolve("/@2:Door", 4, tree) == 106
    assert resolve("/@-1:Door", 4, tree) == 106

    with pytest.raises(PathNotFoundError):
        resolve("/@3:Door", 4, tree)


def test_sibling_offsets_and_names(tree: SpawnTree) -> None:
    assert resolve("~1", 1, tree) == 103
    assert resolve("~-1", 3, tree) == 101
    assert resolve("~Door", 3, tree) == 106
    assert resolve("~-1:Door", 6, tree) == 101

    with pytest.raises(PathNotFoundError):
        resolve("~1", 6, tree)


def test_children_of_later_siblings_are_not_visible(tree: SpawnTree) -> None:
    with pytest.raises(PathNotFoundError):
        resolve("~1/Key", 1, tree)

    assert resolve("Key", 3, tree) == 104
    assert resolve("/Chest", 2, tree) == 103


def test_strict_mode_rejects_ambiguous_names(tree: SpawnTree) -> None:
    assert resolve("/Door", 4, tree) == 101

    with pytest.raises(AmbiguousPathError) as exc_info:
        resolve("/Door", 4, tree, strict=True)

    assert exc_info.value.matches == 2
    assert resolve("/@1:Door", 4, tree, strict=True) == 101


def test_node_without_entity_fails() -> None:
    spawn_tree = SpawnTree(node("Room", node("Door")))
    spawn_tree.set_entity(0, 1)

    with pytest.raises(PathNotFoundError):
        EntityPathResolver().resolve(EntityPath.parse("Door"), 0, spawn_tree)
