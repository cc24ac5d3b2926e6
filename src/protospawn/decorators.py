"""
Utility decorators that should assist with content authoring
"""
from typing import Any, Optional, Type, TypeVar

from protospawn.core.ecs import IComponentFactory
from protospawn.core.schematics import MergePolicy, Schematic
from protospawn.engine import PrototypeEngine

_ST = TypeVar("_ST", bound=Schematic)
_CT = TypeVar("_CT", bound=Any)
_CF = TypeVar("_CF", bound=IComponentFactory)


def schematic(
    engine: PrototypeEngine,
    name: Optional[str] = None,
    merge_policy: MergePolicy = MergePolicy.OVERRIDE,
):
    """Register a Schematic model with the engine

    Parameters
    ----------
    engine: PrototypeEngine
        The engine instance to register the schematic to
    name: str, optional
        A name to register the type under (defaults to name of class)
    merge_policy: MergePolicy, optional
        How inherited instances are combined (defaults to OVERRIDE)
    """

    def decorator(cls: Type[_ST]) -> Type[_ST]:
        engine.register_schematic(cls, name, merge_policy)
        return cls

    return decorator


def component(
    engine: PrototypeEngine,
    name: Optional[str] = None,
    factory: Optional[IComponentFactory] = None,
    merge_policy: MergePolicy = MergePolicy.OVERRIDE,
):
    """Register a component type with the engine

    Registers a component class so that content authors can use it
    as a schematic in prototype files.

    Parameters
    ----------
    engine: PrototypeEngine
        The engine instance to register the component to
    name: str, optional
        A name to register the type under (defaults to name of class)
    factory: IComponentFactory, optional
        A factory instance used to construct this component type
        (defaults to DefaultComponentFactory())
    merge_policy: MergePolicy, optional
        How inherited instances are combined (defaults to OVERRIDE)
    """

    def decorator(cls: Type[_CT]) -> Type[_CT]:
        engine.register_component(cls, name, factory, merge_policy)
        return cls

    return decorator


def component_factory(
    engine: PrototypeEngine, component_type: Type[Any], **kwargs: Any
):
    """Register a factory class for a component type

    Parameters
    ----------
    engine: PrototypeEngine
        The engine instance to register the factory to
    component_type: Type[Any]
        The component type the factory instantiates
    **kwargs: Any
        Keyword arguments passed to the factory's constructor
    """

    def decorator(cls: Type[_CF]) -> Type[_CF]:
        engine.register_component(component_type, factory=cls(**kwargs))
        return cls

    return decorator
