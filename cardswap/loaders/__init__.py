"""Loaders for declarative configuration (JSON)."""

from .json_loader import (
    load_catalog_from_json,
    parse_catalog_dict,
    seed_from_definition,
    validate_catalog_dict,
    validate_catalog_file,
)

__all__ = [
    "load_catalog_from_json",
    "parse_catalog_dict",
    "seed_from_definition",
    "validate_catalog_dict",
    "validate_catalog_file",
]
