"""
Entity-Component System

This package contains the entity store that prototypes are spawned into. It has
definitions for GameObjects, components, component factories, and the world.
"""

from .ecs import (
    Component,
    ComponentInfo,
    ComponentNotFoundError,
    DefaultComponentFactory,
    GameObject,
    GameObjectNotFoundError,
    IComponentFactory,
    World,
)

__all__ = [
    "Component",
    "ComponentInfo",
    "ComponentNotFoundError",
    "DefaultComponentFactory",
    "GameObject",
    "GameObjectNotFoundError",
    "IComponentFactory",
    "World",
]
