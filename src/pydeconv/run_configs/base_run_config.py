#!/usr/bin/env python
# -*- coding: utf-8 -*-

'''
This is the file that holds the parent class for all run configs
'''

# Written by
# Alfred Worrad <worrada@udel.edu>,

__author__ = "Afred Worrad"
__version__ = "0.3.0"
__maintainer__ = "Alfred Worrad"
__email__ = "worrada@udel.edu"
__status__ = "Development"
__project__ = "PyDeconv"
__created__ = "March 24, 2026"
__updated__ = "October 02, 2026"

# built-in modules
from abc import ABC, abstractmethod
from typing import Any, Dict, List
import copy
import json
import logging
import os
import warnings

# third-party modules
import yaml

# project modules
from pydeconv.config_files.dict_config_utils import (
    GENERAL_PAGE, ANALYSIS_PAGE, CURRENT_STATE, TYPE_VALUE, HAS_OPTIONS, OPTIONS, IS_REQUIRED, EDITABLE,
    CustomEncoder, check_type, convert_clean_config, custom_decoder, extract_current_state
)

logger = logging.getLogger(__name__)


def _coerce(value: Any, type_val, name: str) -> Any:
    """ Accept ints for float keys, numeric strings (YAML reads 1e-6 as a string) and blank strings. """
    if type_val == float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if type_val == float and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
    if type_val == str and value is None:
        return ""
    if not check_type(value, type_val):
        type_name = getattr(type_val, "__name__", str(type_val).replace("typing.", ""))
        raise ValueError(f"Configuration value '{name}' = {value!r} is not of type {type_name}")
    return value


def _merge_section(defaults: Dict[str, dict], given: Dict[str, dict], path: str) -> None:
    """ Write the given CURRENT_STATE values into a copy of the default page, validating each one. """
    for key, value in given.items():
        name = f"{path} / {key}"
        if key not in defaults:
            message = f"Unknown configuration key '{name}' is ignored"
            logger.warning(message)
            warnings.warn(message)
            continue
        default = defaults[key]
        state = value[CURRENT_STATE]
        if default[TYPE_VALUE] == dict:
            if not isinstance(state, dict):
                raise ValueError(f"Configuration value '{name}' must be a mapping, got {state!r}")
            _merge_section(default[CURRENT_STATE], state, name)
            continue
        state = _coerce(state, default[TYPE_VALUE], name)
        if default[HAS_OPTIONS] and default[OPTIONS] and state not in default[OPTIONS]:
            raise ValueError(f"Configuration value '{name}' = {state!r} is not one of {default[OPTIONS]}")
        if not default[EDITABLE] and state != default[CURRENT_STATE]:
            raise ValueError(f"Configuration value '{name}' is not editable (expected {default[CURRENT_STATE]!r})")
        default[CURRENT_STATE] = state


class BaseRunConfig(ABC):
    # page name -> default DictConfig page, set by subclasses
    default_config: Dict[str, Dict[str, dict]] = {}

    def __init__(self, dict_config) -> None:
        self._dict_config = self.resolve_config(dict_config)
        self.general_page_config = self._dict_config[GENERAL_PAGE]
        self.analysis_page_config = self._dict_config[ANALYSIS_PAGE]

    @abstractmethod
    def load_data(self):
        pass

    @abstractmethod
    def perform_analysis(self):
        pass

    @classmethod
    def resolve_config(cls, dict_config: Dict[str, Any]) -> Dict[str, Dict[str, dict]]:
        """ Merge a clean or wrapped configuration over the defaults.

        Args:
            dict_config (Dict[str, Any]): page -> key -> value, plain or CURRENT_STATE-wrapped.

        Raises:
            TypeError: If the configuration is not a mapping.
            KeyError: If the General_Page or Analysis_Page is missing.
            ValueError: If a value has the wrong type or is not one of the allowed options.

        Returns:
            Dict[str, Dict[str, dict]]: Full configuration with DictConfig metadata.
        """
        if not isinstance(dict_config, dict):
            raise TypeError(f"Configuration must be a mapping, got {type(dict_config).__name__}")
        for page in (GENERAL_PAGE, ANALYSIS_PAGE):
            if page not in dict_config:
                raise KeyError(f"'{page}' not found in config, top-level keys: {list(dict_config.keys())}")
        wrapped = convert_clean_config(dict_config)
        resolved = copy.deepcopy(cls.default_config)
        for page, page_config in wrapped.items():
            if page not in resolved:
                message = f"Unknown configuration page '{page}' is ignored"
                logger.warning(message)
                warnings.warn(message)
                continue
            _merge_section(resolved[page], page_config, page)
        return resolved

    def missing_required(self) -> List[str]:
        """ Required keys that are still blank. """
        missing = []
        for page in (GENERAL_PAGE, ANALYSIS_PAGE):
            for key, value in self._dict_config[page].items():
                if value[IS_REQUIRED] and value[CURRENT_STATE] in ("", None):
                    missing.append(f"{page} / {key}")
        return missing

    def check_required(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ValueError(f"Missing required configuration values: {', '.join(missing)}")

    def get_clean_config(self) -> dict:
        return extract_current_state(self._dict_config)

    def write_yaml_config(self, output_path: str) -> None:
        """
        Writes the current configuration to a YAML file.

        Parameters:
        output_path (str): The path where the YAML file will be saved.
        """
        with open(output_path, 'w') as file:
            yaml.safe_dump(self.get_clean_config(), file, default_flow_style=False, sort_keys=False)

    def write_json_config(self, output_path: str) -> None:
        """
        Writes the current configuration to a JSON file, keeping the full DictConfig metadata.

        Parameters:
        output_path (str): The path where the JSON file will be saved.
        """
        with open(output_path, 'w') as file:
            json.dump(self._dict_config, file, indent=2, ensure_ascii=False, cls=CustomEncoder)

    def write_json_clean(self, output_path: str) -> None:
        """
        Writes a clean JSON configuration (similar to YAML format).

        Parameters:
        output_path (str): The path where the clean JSON file will be saved.
        """
        with open(output_path, 'w') as file:
            json.dump(self.get_clean_config(), file, indent=2, ensure_ascii=False)

    def write_config(self, output_path: str) -> None:
        """
        Writes the current configuration to a file. Format is determined by file extension.

        Parameters:
        output_path (str): The path where the config file will be saved (.yaml/.yml or .json).
        """
        file_ext = os.path.splitext(output_path)[1].lower()

        if file_ext in ['.yaml', '.yml']:
            self.write_yaml_config(output_path)
        elif file_ext == '.json':
            self.write_json_config(output_path)
        else:
            raise ValueError(f"Unsupported file extension: {file_ext}. Use .yaml, .yml, or .json")

    @staticmethod
    def read_config_file(file_path: str) -> dict:
        """
        Reads a YAML or JSON configuration file. Format is detected by file extension.

        Parameters:
        file_path (str): The path to the configuration file (.yaml/.yml or .json).

        Returns:
        dict: The contents of the file.
        """
        file_ext = os.path.splitext(file_path)[1].lower()
        if file_ext in ['.yaml', '.yml']:
            with open(file_path, 'r') as file:
                config = yaml.safe_load(file)
        elif file_ext == '.json':
            with open(file_path, 'r') as file:
                config = json.load(file, object_hook=custom_decoder)
        else:
            raise ValueError(f"Unsupported file extension: {file_ext}. Use .yaml, .yml, or .json")
        if not isinstance(config, dict):
            raise ValueError(f"{os.path.basename(file_path)} does not contain a configuration mapping")
        return config

    @classmethod
    def from_file(cls, file_path: str):
        """
        Creates a run config instance from a configuration file (YAML or JSON).

        Parameters:
        file_path (str): The path to the configuration file (.yaml/.yml or .json).

        Returns:
        BaseRunConfig: An instance of the calling run config class.
        """
        return cls(cls.read_config_file(file_path))
