"""Creation and storage of the search configuration.

The default configuration is read from `constants/default.yaml` and can be updated with one or more other
configuration objects. Configurations later in the sequence overwrite previous values.
"""

import json
import logging
import os
from collections import UserDict, defaultdict
from copy import deepcopy

import yaml

from mascotsearch.constants.keys import ConfigKeys
from mascotsearch.exceptions import KeyAddedConfigError, TypeMismatchConfigError

logger = logging.getLogger()

DEFAULT = "default"

# sections whose keys are passed to the server verbatim, so new keys are allowed
OPEN_SECTIONS = [ConfigKeys.SEARCH]


class Config(UserDict):
    """Dict-like config class that can read from and write to yaml and json files and allows updating with other config objects."""

    def __init__(self, data: dict = None, name: str = DEFAULT) -> None:
        # super class deliberately not called as this calls "update" (which we overwrite)
        self.data = {**data} if data is not None else {}
        self.name = name

    def from_yaml(self, path: str) -> None:
        with open(path) as f:
            self.data = yaml.safe_load(f)

    def from_json(self, path: str) -> None:
        with open(path) as f:
            self.data = json.load(f)

    def to_yaml(self, path: str) -> None:
        with open(path, "w") as f:
            yaml.dump(self.data, f, sort_keys=False)

    def to_json(self, path: str) -> None:
        with open(path, "w") as f:
            json.dump(self.data, f)

    def __setitem__(self, key, item):
        raise NotImplementedError("Use update() to update the config.")

    def __delitem__(self, key):
        raise NotImplementedError("Use update() to update the config.")

    def copy(self):
        raise NotImplementedError("Use deepcopy() to copy the config.")

    def update(self, configs: list["Config"], do_print: bool = False):
        """
        Updates the config with one or more other config objects.

        Parameters
        ----------
        configs : list of configs
            List of config objects to update the current config with. The order of the configs is important (last one wins).

        do_print : bool, optional
            Whether to log the values that differ from the default. Default is False.
        """
        tracking_dict = defaultdict(dict)

        current_config = deepcopy(self.data)
        for config in configs:
            logger.info(f"Updating config with '{config.name}'")

            _update(current_config, config.data, tracking_dict, config.name)

        self.data = current_config

        if do_print:
            for key, config_name in sorted(_flatten(tracking_dict).items()):
                logger.info(f"{key}: {_get(current_config, key)} [{config_name}]")


def load_default_config() -> Config:
    """Load the default config shipped with the package."""
    default_config_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)), "constants", "default.yaml"
    )
    logger.debug(f"loading default config from {default_config_path}")
    config = Config()
    config.from_yaml(default_config_path)
    return config


def _update(
    target_config: dict,
    update_config: dict,
    tracking_dict: dict,
    config_name: str,
    parent_keys: str = "",
) -> None:
    """
    Recursively update target_config in-place with values from update_config.

    For each value that gets updated, the corresponding value in tracking_dict is set to config_name.

    Notes
    -----
    - Nested dictionaries are recursively updated
    - Only updates existing keys, except in `OPEN_SECTIONS`
    - numbers in `OPEN_SECTIONS` are converted to strings
    - lists are always overwritten

    Raises
    ------
    - KeyAddedConfigError: a key is not found in the target_config
    - TypeMismatchConfigError: the type of the update value does not match the type of the target value
    """
    for key, update_value in update_config.items():
        full_key = f"{parent_keys}.{key}" if parent_keys else key

        # form fields are sent as text, so numbers from yaml are accepted for them
        if (
            parent_keys in OPEN_SECTIONS
            and isinstance(update_value, int | float)
            and not isinstance(update_value, bool)
        ):
            update_value = str(update_value)

        if key not in target_config:
            if parent_keys in OPEN_SECTIONS:
                target_config[key] = update_value
                tracking_dict[key] = config_name
                continue
            raise KeyAddedConfigError(full_key, update_value, config_name)

        target_value = target_config[key]

        # "true"/"false" strings typically come from the command line or environment
        if isinstance(update_value, str) and not isinstance(target_value, str):
            if update_value.lower() == "true":
                update_value = True
            elif update_value.lower() == "false":
                update_value = False

        if (
            target_value is not None
            and update_value is not None
            and type(target_value) != type(update_value)
            and not (
                isinstance(target_value, int | float)
                and isinstance(update_value, int | float)
            )
        ):
            raise TypeMismatchConfigError(
                full_key,
                update_value,
                config_name,
                f"{type(update_value)} != {type(target_value)}",
            )

        if isinstance(target_value, dict):
            tracking_dict.setdefault(key, {})
            _update(
                target_value,
                update_value,
                tracking_dict[key],
                config_name,
                parent_keys=full_key,
            )
        else:
            target_config[key] = update_value
            tracking_dict[key] = config_name


def _flatten(tracking_dict: dict, prefix: str = "") -> dict:
    flat = {}
    for key, value in tracking_dict.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(_flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


def _get(config: dict, full_key: str):
    value = config
    for key in full_key.split("."):
        value = value[key]
    return value
