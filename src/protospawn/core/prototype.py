"""
protospawn/core/prototype.py

Data models for authored prototypes.

A prototype file looks like this:

    name: Adventurer
    templates: NPC, Backpacker
    schematics:
      Inventory:
        items: [sword]
    children:
      - Torch
      - prototype: Hat
        merge_key: hat
      - name: Shadow
        schematics:
          Opacity: {value: 0.5}

Templates may be given as a list or as a single delimited string. The
delimiter is read from the validation context ("template_delimiter") and
defaults to ",".
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import pydantic

from protospawn.utils.common import split_delimited

DEFAULT_TEMPLATE_DELIMITER = ","


class ChildSpec(pydantic.BaseModel):
    """
    A child entry of a prototype

    Fields
    ----------
    prototype: Union[str, Prototype]
        Reference to a prototype, or an inline prototype definition
    merge_key: Optional[str]
        Children sharing a merge key under the same parent fuse into one node
    """

    prototype: Union[str, Prototype]
    merge_key: Optional[str] = None

    @pydantic.model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"prototype": data}

        if isinstance(data, Prototype):
            return {"prototype": data}

        if isinstance(data, dict) and "prototype" not in data:
            inline = dict(data)
            merge_key = inline.pop("merge_key", None)
            return {"prototype": inline, "merge_key": merge_key}

        return data

    @property
    def is_inline(self) -> bool:
        return isinstance(self.prototype, Prototype)


class Prototype(pydantic.BaseModel):
    """
    An authored, named entity declaration

    Fields
    ----------
    name: str
        Globally unique name of the prototype (may be empty for inline children)
    templates: List[str]
        Ordered template references. Earlier templates take priority.
    schematics: Dict[str, Any]
        Mapping of schematic type identifiers to their raw data
    children: List[ChildSpec]
        Ordered children of the entity
    path: Optional[str]
        Source file path relative to the load root
    """

    name: str = ""
    templates: List[str] = pydantic.Field(default_factory=list)
    schematics: Dict[str, Any] = pydantic.Field(default_factory=dict)
    children: List[ChildSpec] = pydantic.Field(default_factory=list)
    path: Optional[str] = None

    @pydantic.field_validator("templates", mode="before")
    @classmethod
    def _split_templates(cls, value: Any, info: pydantic.ValidationInfo) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            context = info.context or {}
            delimiter = context.get("template_delimiter", DEFAULT_TEMPLATE_DELIMITER)
            return split_delimited(value, delimiter)
        return value

    @pydantic.field_validator("schematics", "children", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any, info: pydantic.ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "schematics" else []
        return value

    def __str__(self) -> str:
        return self.name


ChildSpec.model_rebuild()
