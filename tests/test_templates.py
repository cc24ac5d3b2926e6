from dataclasses import dataclass, field
from typing import Any, List

import pytest

from protospawn.config import CycleResponse, ProtoConfig
from protospawn.content_management import PrototypeLibrary
from protospawn.core.prototype import Prototype
from protospawn.core.schematics import MergePolicy, SchematicRegistry
from protospawn.core.templates import TemplateResolver
from protospawn.core.tree import HierarchyBuilder
from protospawn.errors import (
    CycleDetectedError,
    DuplicateSchematicError,
    TemplateNotFoundError,
)


@dataclass
class Health:
    value: int = 100


@dataclass
class Stats:
    strength: int = 0
    defense: int = 0


@dataclass
class Tags:
    values: List[str] = field(default_factory=list)


def add(library: PrototypeLibrary, **kwargs: Any) -> Prototype:
    prototype = Prototype.model_validate(kwargs)
    library.add(prototype)
    return prototype


def make_resolver(config: ProtoConfig = None):
    config = config if config else ProtoConfig()
    registry = SchematicRegistry()
    registry.register_component(Health)
    registry.register_component(Stats, merge_policy=MergePolicy.MERGE)
    registry.register_component(Tags, merge_policy=MergePolicy.REJECT)
    library = PrototypeLibrary(config)
    return library, TemplateResolver(library, registry, config)


@pytest.fixture
def setup():
    return make_resolver()


def test_template_priority_is_preorder(setup) -> None:
    library, resolver = setup
    add(library, name="D", schematics={"Health": {"value": 4}})
    add(library, name="C", schematics={"Health": {"value": 3}})
    add(library, name="B", templates=["D"])
    add(library, name="A", templates=["B", "C"])

    merged = resolver.resolve(library.get("A"))

    assert list(merged.prototypes) == ["A", "B", "D", "C"]
    assert merged.schematics["Health"].data == {"value": 4}


def test_own_schematics_override_templates(setup) -> None:
    library, resolver = setup
    add(library, name="NPC", schematics={"Health": {"value": 10}})
    add(library, name="Guard", templates="NPC", schematics={"Health": {"value": 50}})

    merged = resolver.resolve(library.get("Guard"))

    assert merged.schematics["Health"].data == {"value": 50}


def test_children_follow_template_postorder(setup) -> None:
    library, resolver = setup
    add(library, name="D", children=["d"])
    add(library, name="C", children=["c"])
    add(library, name="B", templates=["D"], children=["b"])
    add(library, name="A", templates=["B", "C"], children=["a"])

    merged = resolver.resolve(library.get("A"))

    assert [c.spec.prototype for c in merged.children] == ["d", "b", "c", "a"]
    assert [c.owner.name for c in merged.children] == ["D", "B", "C", "A"]


def test_diamond_template_is_visited_once(setup) -> None:
    library, resolver = setup
    add(library, name="D", children=["d"])
    add(library, name="B", templates=["D"])
    add(library, name="C", templates=["D"])
    add(library, name="A", templates=["B", "C"])

    merged = resolver.resolve(library.get("A"))

    assert list(merged.prototypes) == ["A", "B", "D", "C"]
    assert len(merged.children) == 1


def test_missing_template(setup) -> None:
    library, resolver = setup
    add(library, name="A", templates=["Ghost"])

    with pytest.raises(TemplateNotFoundError) as exc_info:
        resolver.resolve(library.get("A"))

    assert exc_info.value.reference == "Ghost"
    assert exc_info.value.referrer == "A"


def test_template_cycle_is_reported(setup) -> None:
    library, resolver = setup
    add(library, name="A", templates=["B"])
    add(library, name="B", templates=["A"])

    with pytest.raises(CycleDetectedError) as exc_info:
        resolver.resolve(library.get("A"))

    assert exc_info.value.cycle == ["A", "B", "A"]
    assert '"A" inherits "B" which inherits "A"' in str(exc_info.value)


def test_self_template_is_a_cycle(setup) -> None:
    library, resolver = setup
    add(library, name="A", templates=["A"])

    with pytest.raises(CycleDetectedError) as exc_info:
        resolver.resolve(library.get("A"))

    assert exc_info.value.description == '"A" inherits "A"'


def test_ignored_cycle_skips_edge() -> None:
    library, resolver = make_resolver(ProtoConfig(on_cycle=CycleResponse.IGNORE))
    add(library, name="A", templates=["B"], schematics={"Health": {"value": 1}})
    add(library, name="B", templates=["A"], schematics={"Health": {"value": 2}})

    merged = resolver.resolve(library.get("A"))

    assert list(merged.prototypes) == ["A", "B"]
    assert merged.schematics["Health"].data == {"value": 1}


def test_skipped_edge_does_not_poison_cache() -> None:
    library, resolver = make_resolver(ProtoConfig(on_cycle=CycleResponse.IGNORE))
    builder = HierarchyBuilder(library, resolver)
    add(library, name="Room", schematics={"Health": {"value": 1}}, children=["Lamp"])
    add(library, name="Lamp", templates=["Room"], schematics={"Stats": {"strength": 2}})

    room = builder.build_prototype(library.get("Room"))
    assert set(room.children[0].schematics) == {"Stats"}

    lamp = builder.build_prototype(library.get("Lamp"))
    assert set(lamp.schematics) == {"Health", "Stats"}


def test_cached_closure_on_stack_is_resolved_again() -> None:
    library, resolver = make_resolver(ProtoConfig(on_cycle=CycleResponse.IGNORE))
    builder = HierarchyBuilder(library, resolver)
    add(library, name="Room", schematics={"Health": {"value": 1}}, children=["Lamp"])
    add(library, name="Lamp", templates=["Room"], schematics={"Stats": {"strength": 2}})

    cached = resolver.resolve(library.get("Lamp"))
    room = builder.build_prototype(library.get("Room"))

    assert set(room.children[0].schematics) == {"Stats"}
    assert resolver.resolve(library.get("Lamp")) is cached
    assert set(cached.schematics) == {"Health", "Stats"}


def test_merge_policy_merges_data(setup) -> None:
    library, resolver = setup
    add(library, name="Base", schematics={"Stats": {"strength": 1, "defense": 2}})
    add(library, name="Strong", templates=["Base"], schematics={"Stats": {"strength": 5}})

    merged = resolver.resolve(library.get("Strong"))

    assert merged.schematics["Stats"].data == {"strength": 5, "defense": 2}


def test_reject_policy_raises(setup) -> None:
    library, resolver = setup
    add(library, name="Base", schematics={"Tags": {"values": ["a"]}})
    add(library, name="Tagged", templates=["Base"], schematics={"Tags": {"values": ["b"]}})

    with pytest.raises(DuplicateSchematicError):
        resolver.resolve(library.get("Tagged"))


def test_resolution_is_cached_until_template_changes(setup) -> None:
    library, resolver = setup
    add(library, name="Base", schematics={"Health": {"value": 1}})
    add(library, name="Child", templates=["Base"])

    first = resolver.resolve(library.get("Child"))
    assert resolver.resolve(library.get("Child")) is first

    invalidated = library.reload(
        Prototype(name="Base", schematics={"Health": {"value": 7}})
    )

    assert set(invalidated) == {"Base", "Child"}
    second = resolver.resolve(library.get("Child"))
    assert second is not first
    assert second.schematics["Health"].data == {"value": 7}
