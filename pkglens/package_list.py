"""
Package List Loader
===================

Loads the set of package names to inspect from a YAML file. The file holds
either a plain list or a mapping whose values (nested lists and mappings) are
flattened, skipping the 'metadata' key.
"""

from pathlib import Path
from typing import List

import yaml


def load_yaml(file_path: Path):
    """Load a YAML file and return its contents."""
    try:
        with open(file_path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError as err:
        raise FileNotFoundError(f"Package list not found: {file_path}") from err
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {file_path}: {e}") from e


def flatten_packages(config) -> List[str]:
    """Flatten a package configuration into a list of package names.

    Args:
        config: A list of names, or a mapping of nested lists and mappings

    Returns:
        List of package names, in file order
    """
    packages: List[str] = []

    if isinstance(config, list):
        for item in config:
            if isinstance(item, (list, dict)):
                packages.extend(flatten_packages(item))
            elif item is not None:
                packages.append(str(item))
    elif isinstance(config, dict):
        for key, value in config.items():
            if key == "metadata":
                continue
            packages.extend(flatten_packages(value))
    elif config is not None:
        raise ValueError(f"Expected a list or mapping of package names, got {type(config).__name__}")

    return packages


def load_package_list(file_path: Path) -> List[str]:
    """Load package names from *file_path*, deduplicated in file order."""
    names = flatten_packages(load_yaml(Path(file_path)))
    return list(dict.fromkeys(names))
