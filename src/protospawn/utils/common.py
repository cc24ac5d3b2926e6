from __future__ import annotations

import copy
from typing import Any, Dict, List, TypeVar

_KT = TypeVar("_KT")


def deep_merge(source: Dict[_KT, Any], other: Dict[_KT, Any]) -> Dict[_KT, Any]:
    """
    Merges two dictionaries (including any nested dictionaries) by overwriting
    fields in the source with the fields present in the other

    Parameters
    ----------
    source: Dict[_KT, Any]
        Dictionary with initial field values

    other: Dict[_KT, Any]
        Dictionary with fields to override in the source dict

    Returns
    -------
    Dict[_KT, Any]
        New dictionary with fields in source overwritten
        with values from the other
    """
    merged_dict = {**source}

    for key, value in other.items():
        if isinstance(value, dict):
            node = merged_dict.get(key, {})
            if not isinstance(node, dict):
                node = {}
            merged_dict[key] = deep_merge(node, value)  # type: ignore
        else:
            merged_dict[key] = copy.deepcopy(value)

    return merged_dict


def split_delimited(value: str, delimiter: str = ",") -> List[str]:
    """Split a delimited string into stripped, non-empty parts, keeping order"""
    return [part.strip() for part in value.split(delimiter) if part.strip()]
