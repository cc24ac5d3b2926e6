from dataclasses import dataclass
from typing import Any, Dict

import pytest

from protospawn.core.ecs import IComponentFactory, World
from protospawn.core.schematics import (
    ComponentSchematic,
    MergePolicy,
    Schematic,
    SchematicRegistry,
)
from protospawn.core.spawn import SchematicContext
from protospawn.decorators import component, component_factory, schematic
from protospawn.engine import PrototypeEngine
from protospawn.errors import (
    DeserializeFailedError,
    DuplicateSchematicError,
    UnknownSchematicTypeError,
)


@dataclass
class Health:
    value: int = 100


@dataclass
class Wallet:
    coins: int
    currency: str


class Speed(Schematic):
    value: float = 1.0

    def apply(self, context: SchematicContext) -> None:
        context.add_component(Health(int(self.value)))


class Settings(Schematic):
    options: Dict[str, Any] = {}

    def apply(self, context: SchematicContext) -> None:
        pass


@pytest.fixture
def registry() -> SchematicRegistry:
    registry = SchematicRegistry()
    registry.register_component(Health)
    registry.register_schematic(Speed)
    registry.register_schematic(Settings, merge_policy=MergePolicy.MERGE)
    return registry


def test_instantiate_component(registry: SchematicRegistry) -> None:
    instance = registry.instantiate("Health", {"value": 5})

    assert isinstance(instance, ComponentSchematic)
    assert instance.to_data() == {"value": 5}


def test_instantiate_with_no_data(registry: SchematicRegistry) -> None:
    assert registry.instantiate("Health", None).to_data() == {}
    assert registry.instantiate("Speed", None).value == 1.0


def test_unknown_type(registry: SchematicRegistry) -> None:
    with pytest.raises(UnknownSchematicTypeError) as exc_info:
        registry.instantiate("Mana", {}, "Wizard")

    assert exc_info.value.type_id == "Mana"
    assert exc_info.value.prototype == "Wizard"


def test_unknown_component_parameter(registry: SchematicRegistry) -> None:
    with pytest.raises(DeserializeFailedError):
        registry.instantiate("Health", {"hp": 5})


def test_component_data_must_be_a_mapping(registry: SchematicRegistry) -> None:
    with pytest.raises(DeserializeFailedError):
        registry.instantiate("Health", [5])


def test_invalid_model_data(registry: SchematicRegistry) -> None:
    with pytest.raises(DeserializeFailedError) as exc_info:
        registry.instantiate("Speed", {"value": "fast"}, "Horse")

    assert exc_info.value.prototype == "Horse"


def test_merge_policies(registry: SchematicRegistry) -> None:
    higher = registry.instantiate("Settings", {"options": {"a": 1, "b": {"x": 1}}})
    lower = registry.instantiate("Settings", {"options": {"b": {"y": 2}, "c": 3}})

    merged = registry.merge("Settings", higher, lower)

    assert merged.to_data() == {"options": {"a": 1, "b": {"x": 1, "y": 2}, "c": 3}}

    fast = registry.instantiate("Speed", {"value": 3})
    slow = registry.instantiate("Speed", {"value": 1})
    assert registry.merge("Speed", fast, slow) is fast

    registry.register_component(Health, merge_policy=MergePolicy.REJECT)
    with pytest.raises(DuplicateSchematicError):
        registry.merge(
            "Health",
            registry.instantiate("Health", {}),
            registry.instantiate("Health", {}),
        )


def test_register_under_custom_name(registry: SchematicRegistry) -> None:
    registry.register_component(Health, name="HP")

    assert "HP" in registry
    assert registry.get_names() == ["Health", "Speed", "Settings", "HP"]


def test_decorators_register_with_engine() -> None:
    engine = PrototypeEngine()

    @component(engine)
    @dataclass
    class Armor:
        rating: int = 0

    @schematic(engine, name="Sprint")
    class SprintSchematic(Schematic):
        value: float = 2.0

        def apply(self, context: SchematicContext) -> None:
            context.add_component(Armor(int(self.value)))

    @component_factory(engine, Wallet, currency="gold")
    class WalletFactory(IComponentFactory):
        def __init__(self, currency: str) -> None:
            self.currency = currency

        def create(self, world: World, **kwargs: Any) -> Wallet:
            return Wallet(coins=kwargs.get("coins", 0), currency=self.currency)

    engine.add_prototype(
        {
            "name": "Knight",
            "schematics": {"Armor": {"rating": 4}, "Wallet": {"coins": 3}},
        }
    )
    engine.add_prototype({"name": "Runner", "schematics": {"Sprint": {}}})

    knight = engine.spawn_now("Knight")
    runner = engine.spawn_now("Runner")

    assert knight.get_component(Armor).rating == 4
    assert knight.get_component(Wallet) == Wallet(3, "gold")
    assert runner.get_component(Armor).rating == 2
