#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
Typed configuration leaves and the helpers that move configurations between
the clean (plain values) form and the CURRENT_STATE-wrapped form.
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 23, 2026"
__updated__ = "September 30, 2026"

# built-in modules
from typing import Any, Dict, List, get_origin, get_args, _GenericAlias
import json

ANALYSIS_PAGE = "Analysis_Page"
GENERAL_PAGE = "General_Page"

PARENT_KEY = "parent_key"
TYPE_VALUE = "type_val"
CURRENT_STATE = "current_state"
HAS_OPTIONS = "has_options"
OPTIONS = "options"
IS_REQUIRED = "is_required"
SELECT_LOCATION = "select_location"
TOOLTIP = "tooltip"
EDITABLE = "editable"

METADATA_KEYS = (PARENT_KEY, TYPE_VALUE, HAS_OPTIONS, OPTIONS, IS_REQUIRED, SELECT_LOCATION, TOOLTIP, EDITABLE)


def check_type(current_state: Any, type_val) -> bool:
    """ True when current_state matches type_val, including List[str] / List[int] generics. """
    if type_val is None:
        return True
    if get_origin(type_val) == list:
        inner = get_args(type_val)
        if not isinstance(current_state, list):
            return False
        if inner:
            return all(type(item) == inner[0] for item in current_state)
        return True
    return type(current_state) == type_val


class DictConfig():
    def __init__(
            self,
            parent_key: str,
            type_val: type = None,
            current_state=None,
            has_options: bool = False,
            options: list = None,
            is_required: bool = False,
            select_location: bool = False,
            tooltip: str = "",
            editable: bool = True,
    ):
        if not check_type(current_state, type_val):
            type_name = str(type_val).replace("typing.", "") if get_origin(type_val) else type_val
            raise ValueError(f"Current value {current_state} is not of type {type_name}")
        options = list(options) if options is not None else []
        if has_options and options and current_state not in options:
            raise ValueError(f"Current value {current_state} is not one of the options {options}")
        self._dictionary_config = {
            PARENT_KEY: parent_key,
            TYPE_VALUE: type_val,
            CURRENT_STATE: current_state,
            HAS_OPTIONS: has_options,
            OPTIONS: options,
            IS_REQUIRED: is_required,
            SELECT_LOCATION: select_location,
            TOOLTIP: tooltip,
            EDITABLE: editable,
        }

    def get_config(self):
        return self._dictionary_config


def current_state_of_key(dictionary: dict, key: str):
    return dictionary[key][CURRENT_STATE]


def is_wrapped(value: Any) -> bool:
    """ True for a CURRENT_STATE-wrapped leaf (with or without DictConfig metadata). """
    return isinstance(value, dict) and CURRENT_STATE in value and set(value) <= {CURRENT_STATE, *METADATA_KEYS}


def convert_clean_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Wrap every leaf value of a clean config (page -> key -> value) in a
    {CURRENT_STATE: value} dict. Nested sections are wrapped recursively and
    entries that are already wrapped are left as they are.
    """
    def _convert(obj):
        if is_wrapped(obj):
            if isinstance(obj[CURRENT_STATE], dict):
                return {**obj, CURRENT_STATE: {k: _convert(v) for k, v in obj[CURRENT_STATE].items()}}
            return obj
        if isinstance(obj, dict):
            return {CURRENT_STATE: {k: _convert(v) for k, v in obj.items()}}
        return {CURRENT_STATE: obj}

    converted = {}
    for page, page_config in config.items():
        if not isinstance(page_config, dict):
            raise ValueError(f"Configuration page '{page}' must be a mapping, got {type(page_config).__name__}")
        converted[page] = {k: _convert(v) for k, v in page_config.items()}
    return converted


def extract_current_state(config_dict: dict) -> dict:
    """
    Recursively extract the 'current_state' values from DictConfig objects
    to create a clean dictionary suitable for YAML serialization.
    """
    clean_dict = {}
    for key, value in config_dict.items():
        if isinstance(value, dict):
            if CURRENT_STATE in value:
                current_state = value[CURRENT_STATE]
                if isinstance(current_state, dict):
                    clean_dict[key] = extract_current_state(current_state)
                else:
                    clean_dict[key] = current_state
            else:
                clean_dict[key] = extract_current_state(value)
        else:
            clean_dict[key] = value
    return clean_dict


class CustomEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, type):
            return {'__type__': obj.__name__}  # Store the type's name
        if isinstance(obj, _GenericAlias):  # Handle typing generics
            return {'__type__': str(obj).replace("typing.", "")}

        return super().default(obj)


# Define a safe mapping of recognized base types
type_mapping = {
    'int': int,
    'float': float,
    'str': str,
    'list': list,
    'dict': dict,
    'bool': bool,
    'NoneType': type(None),
}


def custom_decoder(obj):
    if '__type__' in obj:
        type_name = obj['__type__']

        # Check if it matches a basic type
        if type_name in type_mapping:
            return type_mapping[type_name]

        if type_name.startswith('List['):  # Handle List generics
            inner_type_name = type_name[type_name.index('[') + 1:type_name.index(']')]
            if inner_type_name in type_mapping:
                return List[type_mapping[inner_type_name]]

        elif type_name.startswith('Dict['):  # Handle Dict generics
            key_value_type = type_name[type_name.index('[') + 1:type_name.index(']')]
            key_type_name, value_type_name = key_value_type.split(', ')
            if key_type_name in type_mapping and value_type_name in type_mapping:
                return Dict[type_mapping[key_type_name], type_mapping[value_type_name]]

        # If the type is not recognized, return the object unchanged
    return obj
