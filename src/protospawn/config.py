from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional, Union

import pydantic


class CycleResponse(enum.Enum):
    """What to do when a template or child cycle is detected"""

    CANCEL = "cancel"
    IGNORE = "ignore"


class PluginConfig(pydantic.BaseModel):
    """
    Settings for loading and constructing a plugin

    Fields
    ----------
    name: str
        Name of the plugin's python module
    path: Optional[str]
        The path where the plugin is located
    options: Dict[str, Any]
        Keyword arguments passed to the plugin's setup function
    """

    name: str
    path: Optional[str] = None
    options: Dict[str, Any] = pydantic.Field(default_factory=dict)


class ProtoConfig(pydantic.BaseModel):
    """
    Settings that control how prototypes are loaded, resolved, and spawned

    Fields
    ----------
    extensions: List[str]
        File extensions recognized as prototype files. Longer, more
        specific extensions are matched first.
    template_delimiter: str
        Separator used when templates are written as a single string
    on_cycle: CycleResponse
        Whether a detected cycle fails the request or is skipped with a warning
    strict_entity_paths: bool
        Raise AmbiguousPathError when a name lookup matches several nodes
    verbose: bool
        Log debug output for resolution and spawning
    """

    extensions: List[str] = pydantic.Field(
        default_factory=lambda: [
            "prototype.yaml",
            "prototype.yml",
            "prototype.json",
            "yaml",
            "yml",
            "json",
        ]
    )
    template_delimiter: str = ","
    on_cycle: CycleResponse = CycleResponse.CANCEL
    strict_entity_paths: bool = False
    verbose: bool = False

    @pydantic.field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        return sorted(
            (ext.lstrip(".").lower() for ext in value if ext.strip(".")),
            key=lambda ext: -ext.count("."),
        )

    @pydantic.field_validator("template_delimiter")
    @classmethod
    def _check_delimiter(cls, value: str) -> str:
        if not value:
            raise ValueError("template_delimiter cannot be empty")
        return value

    def match_extension(self, path: str) -> Optional[str]:
        """Return the configured extension that the given path ends with, if any"""
        lowered = path.lower()
        for ext in self.extensions:
            if lowered.endswith("." + ext):
                return ext
        return None


class ProtoCLIConfig(ProtoConfig):
    """
    Settings for the command line interface

    Fields
    ----------
    path: str
        Root folder to load prototypes from
    prototypes: List[str]
        Names of the prototypes to spawn after loading
    plugins: List[Union[str, PluginConfig]]
        Plugins that register schematic types before loading
    """

    path: str = "."
    prototypes: List[str] = pydantic.Field(default_factory=list)
    plugins: List[Union[str, PluginConfig]] = pydantic.Field(default_factory=list)

    @classmethod
    def from_partial(
        cls, data: Dict[str, Any], defaults: ProtoCLIConfig
    ) -> ProtoCLIConfig:
        """Construct new config from a default config and a partial set of parameters"""
        return cls(**{**defaults.model_dump(), **data})
