"""
ecs.py

Entity store used as the spawn target for prototypes. It blends Unity-style
GameObjects with the component storage of the Python esper library.

Each World owns its own esper context, so several worlds can coexist in one
process. Structural mutation is not thread-safe on its own; callers that
mutate from more than one thread must hold World.exclusive() while doing so.

Sources:
https://docs.unity3d.com/ScriptReference/GameObject.html
https://github.com/benmoran56/esper
https://github.com/bevyengine/bevy
"""
from __future__ import annotations

import contextlib
import dataclasses
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

import esper

logger = logging.getLogger(__name__)


_CT = TypeVar("_CT")

_world_ids = itertools.count()


class GameObjectNotFoundError(Exception):
    """Exception raised when attempting to retrieve a GameObject that does not exist

    Attributes
    ----------
    gameobject_uid: int
        The unique ID of the desired GameObject
    message: str
        An error message
    """

    __slots__ = "gameobject_uid", "message"

    def __init__(self, gameobject_uid: int) -> None:
        super().__init__()
        self.gameobject_uid: int = gameobject_uid
        self.message = f"Could not find GameObject with id: {gameobject_uid}."

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return "{}(gameobject_uid={})".format(
            self.__class__.__name__, self.gameobject_uid
        )


class ComponentNotFoundError(Exception):
    """Exception raised when attempting to retrieve a component that does not exist

    Attributes
    ----------
    component_type: Type[Any]
        The type of component not found
    message: str
        An error message
    """

    __slots__ = "component_type", "message"

    def __init__(self, component_type: Type[Any]) -> None:
        super().__init__()
        self.component_type: Type[Any] = component_type
        self.message = "Could not find Component with type {}.".format(
            component_type.__name__
        )

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return "{}(component_type={})".format(
            self.__class__.__name__,
            self.component_type.__name__,
        )


class GameObject:
    """A reference to an entity within the world

    GameObjects wrap a unique integer identifier and provide an interface to
    manipulate an entity, its components, and its place in the hierarchy.

    Attributes
    ----------
    name: str
        The name of the GameObject
    children: List[GameObject]
        Other GameObjects that are below this one in the hierarchy
        and are removed when this GameObject is removed
    parent: Optional[GameObject]
        The GameObject that this GameObject is a child of
    """

    __slots__ = "_id", "name", "_world", "children", "parent"

    def __init__(self, unique_id: int, world: World, name: str = "") -> None:
        self.name: str = name if name else f"GameObject({unique_id})"
        self._id: int = unique_id
        self._world: World = world
        self.parent: Optional[GameObject] = None
        self.children: List[GameObject] = []

    @property
    def uid(self) -> int:
        """Return GameObject's ID"""
        return self._id

    @property
    def world(self) -> World:
        """Return the world that this GameObject belongs to"""
        return self._world

    @property
    def exists(self) -> bool:
        """Return True if the GameObject still exists in the world"""
        return self.world.has_gameobject(self._id)

    def get_components(self) -> Tuple[Any, ...]:
        """Returns the component instances associated with this GameObject"""
        return self.world.get_components_for_entity(self.uid)

    def get_component_types(self) -> Tuple[Type[Any], ...]:
        return tuple(type(component) for component in self.get_components())

    def add_component(self, component: Any) -> None:
        """Add a component to this GameObject, replacing one of the same type"""
        self.world.add_component(self.uid, component)

    def remove_component(self, component_type: Type[Any]) -> None:
        self.world.remove_component(self.uid, component_type)

    def get_component(self, component_type: Type[_CT]) -> _CT:
        return self.world.get_component_for_entity(self.uid, component_type)

    def has_component(self, component_type: Type[Any]) -> bool:
        """Check if this entity has a component of a given type"""
        return self.world.has_component(self.uid, component_type)

    def try_component(self, component_type: Type[_CT]) -> Optional[_CT]:
        return self.world.try_component_for_entity(self.uid, component_type)

    def add_child(self, gameobject: GameObject) -> None:
        """Add a GameObject as the child of this GameObject"""
        if gameobject.parent is not None:
            gameobject.parent.remove_child(gameobject)
        gameobject.parent = self
        self.children.append(gameobject)

    def remove_child(self, gameobject: GameObject) -> None:
        """Remove a GameObject as a child of this GameObject"""
        self.children.remove(gameobject)
        gameobject.parent = None

    def destroy(self) -> None:
        """Remove the GameObject from its World instance"""
        self.world.destroy_gameobject(self.uid)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the GameObject to a Dict"""
        return {
            "id": self.uid,
            "name": self.name,
            "parent": self.parent.uid if self.parent else -1,
            "children": [c.uid for c in self.children],
            "components": {
                c.__class__.__name__: _component_to_dict(c)
                for c in self.get_components()
            },
        }

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GameObject):
            return self.uid == other.uid and self.world is other.world
        return NotImplemented

    def __int__(self) -> int:
        return self._id

    def __hash__(self) -> int:
        return self._id

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return "{}(id={}, name={}, parent={}, children={})".format(
            self.__class__.__name__,
            self.uid,
            self.name,
            self.parent.uid if self.parent else None,
            [c.uid for c in self.children],
        )


class Component(ABC):
    """Optional base class for components that want a back-reference to their GameObject"""

    __slots__ = "_gameobject"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self._gameobject: Optional[GameObject] = None

    @property
    def gameobject(self) -> GameObject:
        """Return the GameObject this component is attached to"""
        if self._gameobject is None:
            raise TypeError("Component's GameObject is None")
        return self._gameobject

    def set_gameobject(self, gameobject: Optional[GameObject]) -> None:
        self._gameobject = gameobject

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the component to a dict"""
        return {}


class IComponentFactory(ABC):
    """Abstract base class for factory objects that create component instances"""

    @abstractmethod
    def create(self, world: World, **kwargs: Any) -> Any:
        """
        Create an instance of a component

        Parameters
        ----------
        world: World
            Reference to the World object
        **kwargs: Dict[str, Any]
            Data taken from the prototype file

        Returns
        -------
        Any
            Component instance
        """
        raise NotImplementedError


class DefaultComponentFactory(IComponentFactory):
    """
    Constructs instances of a component only using keyword parameters

    Attributes
    ----------
    component_type: Type[Any]
        The type of component that this factory will create
    """

    __slots__ = "component_type"

    def __init__(self, component_type: Type[Any]) -> None:
        super().__init__()
        self.component_type: Type[Any] = component_type

    def create(self, world: World, **kwargs: Any) -> Any:
        """Create a new instance of the component_type using keyword arguments"""
        return self.component_type(**kwargs)


class World:
    """
    Stores GameObjects and their components

    Attributes
    ----------
    _context: str
        Name of the esper world context that holds this World's components
    _gameobjects: Dict[int, GameObject]
        Mapping of unique identifiers to GameObjects
    _lock: threading.RLock
        Lock held for structural changes made through exclusive()
    """

    __slots__ = "_context", "_gameobjects", "_lock"

    def __init__(self) -> None:
        self._context: str = f"protospawn-world-{next(_world_ids)}"
        self._gameobjects: Dict[int, GameObject] = {}
        self._lock: threading.RLock = threading.RLock()
        esper.switch_world(self._context)

    def _use(self) -> None:
        if esper.current_world != self._context:
            esper.switch_world(self._context)

    @contextlib.contextmanager
    def exclusive(self) -> Iterator[World]:
        """Hold exclusive write access to this world for the duration of the block"""
        with self._lock:
            yield self

    def spawn_gameobject(
        self, components: Optional[List[Any]] = None, name: Optional[str] = None
    ) -> GameObject:
        """Create a new gameobject and attach any given component instances"""
        self._use()
        entity_id = esper.create_entity()

        gameobject = GameObject(
            unique_id=entity_id,
            world=self,
            name=(name if name else f"GameObject({entity_id})"),
        )

        self._gameobjects[gameobject.uid] = gameobject

        for component in components if components else []:
            self.add_component(entity_id, component)

        return gameobject

    def get_gameobject(self, gid: int) -> GameObject:
        """Retrieve the GameObject with the given id"""
        try:
            return self._gameobjects[gid]
        except KeyError:
            raise GameObjectNotFoundError(gid)

    def get_gameobjects(self) -> List[GameObject]:
        return list(self._gameobjects.values())

    def has_gameobject(self, gid: int) -> bool:
        """Check that a GameObject with the given id exists"""
        return gid in self._gameobjects

    def destroy_gameobject(self, gid: int) -> None:
        """Remove a gameobject and all of its descendants from the world immediately"""
        gameobject = self.get_gameobject(gid)

        for child in list(gameobject.children):
            self.destroy_gameobject(child.uid)

        if gameobject.parent is not None:
            gameobject.parent.remove_child(gameobject)

        self._use()
        if esper.entity_exists(gid):
            esper.delete_entity(gid, immediate=True)

        del self._gameobjects[gid]

    def add_component(self, gid: int, component: Any) -> None:
        """Add a component to an entity"""
        gameobject = self.get_gameobject(gid)
        if isinstance(component, Component):
            component.set_gameobject(gameobject)
        self._use()
        esper.add_component(gid, component)

    def remove_component(self, gid: int, component_type: Type[Any]) -> None:
        """Remove a component from an entity"""
        self._use()
        try:
            esper.remove_component(gid, component_type)
        except KeyError:
            raise ComponentNotFoundError(component_type)

    def get_component(self, component_type: Type[_CT]) -> List[Tuple[int, _CT]]:
        """Get all the gameobjects that have a given component type"""
        self._use()
        return list(esper.get_component(component_type))

    def get_component_for_entity(self, gid: int, component_type: Type[_CT]) -> _CT:
        """Return the component type attached to an entity

        Raises
        ------
        ComponentNotFoundError
            When the entity has no component of the given type
        """
        self._use()
        try:
            return esper.component_for_entity(gid, component_type)
        except KeyError:
            raise ComponentNotFoundError(component_type)

    def try_component_for_entity(
        self, gid: int, component_type: Type[_CT]
    ) -> Optional[_CT]:
        self._use()
        if not esper.entity_exists(gid):
            return None
        return esper.try_component(gid, component_type)

    def has_component(self, gid: int, component_type: Type[Any]) -> bool:
        self._use()
        try:
            return esper.has_component(gid, component_type)
        except KeyError:
            return False

    def get_components_for_entity(self, gid: int) -> Tuple[Any, ...]:
        """Get the instances of the component types on the given entity"""
        self._use()
        try:
            return tuple(esper.components_for_entity(gid))
        except KeyError:
            return ()

    def clear(self) -> None:
        """Remove every gameobject from the world"""
        for gameobject in [g for g in self._gameobjects.values() if g.parent is None]:
            self.destroy_gameobject(gameobject.uid)

    def __len__(self) -> int:
        return len(self._gameobjects)


@dataclasses.dataclass(frozen=True)
class ComponentInfo:
    """Information about a component class registered for use in prototype files

    Attributes
    ----------
    name: str
        The name mapped to this component type
    component_type: Type[Any]
        The component class
    factory: IComponentFactory
        A factory instance used to construct the given component type
    """

    name: str
    component_type: Type[Any]
    factory: IComponentFactory


def _component_to_dict(component: Any) -> Dict[str, Any]:
    if isinstance(component, Component):
        return component.to_dict()
    if dataclasses.is_dataclass(component) and not isinstance(component, type):
        return dataclasses.asdict(component)
    to_dict = getattr(component, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {"value": repr(component)}
