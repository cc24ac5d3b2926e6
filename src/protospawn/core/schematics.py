"""
protospawn/core/schematics.py

Schematics are the typed, serializable units that make up a prototype. Each one
expands into zero or more components when it is applied to an entity.

Schematic types are registered under a string identifier so that prototype
files can refer to them by name. Two kinds of types are supported out of the
box: pydantic models that subclass Schematic, and plain component classes that
are constructed through an IComponentFactory.
"""
from __future__ import annotations

import copy
import dataclasses
import enum
import inspect
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Type, TypeVar

import pydantic

from protospawn.core.access import EntityPath
from protospawn.core.assets import AssetRef
from protospawn.core.deps import DependenciesBuilder
from protospawn.core.ecs import ComponentInfo, DefaultComponentFactory, IComponentFactory
from protospawn.errors import (
    DeserializeFailedError,
    DuplicateSchematicError,
    PrototypeError,
    UnknownSchematicTypeError,
)
from protospawn.utils.common import deep_merge

if TYPE_CHECKING:
    from protospawn.core.spawn import SchematicContext

logger = logging.getLogger(__name__)

_ST = TypeVar("_ST", bound="Schematic")


class MergePolicy(enum.Enum):
    """How two instances of the same schematic type are combined"""

    OVERRIDE = "override"
    MERGE = "merge"
    REJECT = "reject"


class ISchematic(ABC):
    """Interface shared by every schematic instance"""

    @abstractmethod
    def apply(self, context: SchematicContext) -> None:
        """Attach components to the entity of the given context"""
        raise NotImplementedError

    def preload_dependencies(self, builder: DependenciesBuilder) -> None:
        """Declare assets and entity paths needed before this schematic applies"""
        return

    @abstractmethod
    def to_data(self) -> Any:
        """Return the serializable data this schematic was built from"""
        raise NotImplementedError


def _iter_references(value: Any) -> Iterator[Any]:
    if isinstance(value, (AssetRef, EntityPath)):
        yield value
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from _iter_references(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _iter_references(item)


class Schematic(pydantic.BaseModel, ISchematic):
    """
    Base class for schematic types written as pydantic models

    Fields typed as AssetRef or EntityPath (including inside lists and
    dicts) are reported as dependencies automatically.
    """

    model_config = pydantic.ConfigDict(arbitrary_types_allowed=True)

    def preload_dependencies(self, builder: DependenciesBuilder) -> None:
        for field_name in type(self).model_fields:
            for ref in _iter_references(getattr(self, field_name)):
                if isinstance(ref, AssetRef):
                    builder.add_asset(ref)
                else:
                    builder.add_entity_path(ref)

    def to_data(self) -> Dict[str, Any]:
        return self.model_dump()


class ComponentSchematic(ISchematic):
    """
    Schematic that constructs a single component through its factory

    Attributes
    ----------
    info: ComponentInfo
        The registered component type and factory
    data: Dict[str, Any]
        Keyword arguments passed to the factory
    """

    __slots__ = "info", "data"

    def __init__(self, info: ComponentInfo, data: Dict[str, Any]) -> None:
        self.info: ComponentInfo = info
        self.data: Dict[str, Any] = data

    def apply(self, context: SchematicContext) -> None:
        component = self.info.factory.create(context.world, **copy.deepcopy(self.data))
        context.add_component(component)

    def to_data(self) -> Dict[str, Any]:
        return copy.deepcopy(self.data)

    def __repr__(self) -> str:
        return "{}(name={}, data={})".format(
            self.__class__.__name__, self.info.name, self.data
        )


class ISchematicFactory(ABC):
    """Creates schematic instances from deserialized data"""

    @abstractmethod
    def create(self, data: Any) -> ISchematic:
        """
        Create a schematic

        Raises
        ------
        Exception
            When the data does not fit the schematic type. The registry
            reports any error as DeserializeFailedError.
        """
        raise NotImplementedError


class ModelSchematicFactory(ISchematicFactory):
    """Validates data against a Schematic model"""

    __slots__ = "model_type"

    def __init__(self, model_type: Type[Schematic]) -> None:
        self.model_type: Type[Schematic] = model_type

    def create(self, data: Any) -> ISchematic:
        return self.model_type.model_validate({} if data is None else data)


class ComponentSchematicFactory(ISchematicFactory):
    """Wraps data for a component type so it can be constructed at apply time"""

    __slots__ = "info"

    def __init__(self, info: ComponentInfo) -> None:
        self.info: ComponentInfo = info

    def create(self, data: Any) -> ISchematic:
        if data is None:
            data = {}

        if not isinstance(data, dict):
            raise TypeError(
                f"Expected a mapping of parameters but got {type(data).__name__}"
            )

        if isinstance(self.info.factory, DefaultComponentFactory):
            # Unknown or missing parameters are caught before spawning
            inspect.signature(self.info.component_type).bind(**data)

        return ComponentSchematic(self.info, copy.deepcopy(data))


@dataclasses.dataclass(frozen=True)
class SchematicInfo:
    """
    Information about a registered schematic type

    Attributes
    ----------
    name: str
        The type identifier used in prototype files
    factory: ISchematicFactory
        Creates instances of the type
    merge_policy: MergePolicy
        How inherited instances of this type are combined
    """

    name: str
    factory: ISchematicFactory
    merge_policy: MergePolicy = MergePolicy.OVERRIDE


class SchematicRegistry:
    """Maps type identifiers to the factories that build schematics"""

    __slots__ = "_types"

    def __init__(self) -> None:
        self._types: Dict[str, SchematicInfo] = {}

    def __contains__(self, type_id: str) -> bool:
        return type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    def get_names(self) -> List[str]:
        return list(self._types.keys())

    def register(
        self,
        type_id: str,
        factory: ISchematicFactory,
        merge_policy: MergePolicy = MergePolicy.OVERRIDE,
    ) -> SchematicInfo:
        """
        Register a schematic type

        Parameters
        ----------
        type_id: str
            The name prototype files use for this type
        factory: ISchematicFactory
            Creates instances of the type from deserialized data
        merge_policy: MergePolicy, optional
            How inherited instances are combined (defaults to OVERRIDE)

        Returns
        -------
        SchematicInfo
            The stored registration
        """
        if type_id in self._types:
            logger.warning("Replacing registration for schematic type '%s'", type_id)

        info = SchematicInfo(type_id, factory, merge_policy)
        self._types[type_id] = info
        return info

    def register_schematic(
        self,
        model_type: Type[_ST],
        name: Optional[str] = None,
        merge_policy: MergePolicy = MergePolicy.OVERRIDE,
    ) -> Type[_ST]:
        """Register a Schematic model under its class name or the given name"""
        self.register(
            name if name else model_type.__name__,
            ModelSchematicFactory(model_type),
            merge_policy,
        )
        return model_type

    def register_component(
        self,
        component_type: Type[Any],
        name: Optional[str] = None,
        factory: Optional[IComponentFactory] = None,
        merge_policy: MergePolicy = MergePolicy.OVERRIDE,
    ) -> ComponentInfo:
        """
        Register a component class as a schematic type

        Parameters
        ----------
        component_type: Type[Any]
            The component class
        name: str, optional
            A name to register the component type under (defaults to name of class)
        factory: IComponentFactory, optional
            A factory instance used to construct this component type
            (defaults to DefaultComponentFactory())
        merge_policy: MergePolicy, optional
            How inherited instances are combined (defaults to OVERRIDE)
        """
        info = ComponentInfo(
            name=name if name else component_type.__name__,
            component_type=component_type,
            factory=factory if factory else DefaultComponentFactory(component_type),
        )
        self.register(info.name, ComponentSchematicFactory(info), merge_policy)
        return info

    def get_info(self, type_id: str, prototype: str = "") -> SchematicInfo:
        try:
            return self._types[type_id]
        except KeyError:
            raise UnknownSchematicTypeError(type_id, prototype)

    def instantiate(self, type_id: str, data: Any, prototype: str = "") -> ISchematic:
        """
        Create a schematic of the given type

        Raises
        ------
        UnknownSchematicTypeError
            When the type is not registered
        DeserializeFailedError
            When the data does not fit the type
        """
        info = self.get_info(type_id, prototype)

        try:
            return info.factory.create(data)
        except PrototypeError:
            raise
        except Exception as ex:
            raise DeserializeFailedError(type_id, prototype, str(ex)) from ex

    def merge(
        self, type_id: str, higher: ISchematic, lower: ISchematic, prototype: str = ""
    ) -> ISchematic:
        """
        Combine two instances of a type according to its merge policy

        Parameters
        ----------
        type_id: str
            The schematic type
        higher: ISchematic
            The instance from the higher priority source
        lower: ISchematic
            The instance from the lower priority source
        prototype: str, optional
            Prototype name used in error messages

        Returns
        -------
        ISchematic
            The combined schematic
        """
        policy = self.get_info(type_id, prototype).merge_policy

        if policy == MergePolicy.REJECT:
            raise DuplicateSchematicError(type_id, prototype)

        if policy == MergePolicy.MERGE:
            lower_data = lower.to_data()
            higher_data = higher.to_data()
            if isinstance(lower_data, dict) and isinstance(higher_data, dict):
                return self.instantiate(
                    type_id, deep_merge(lower_data, higher_data), prototype
                )

        return higher
