"""Mapping between raw catalog responses and the package's entity shapes."""

from .normalizer import (
    dataset_payload,
    normalize_dataset,
    normalize_organization,
    normalize_resource,
    resource_fields,
)

__all__ = [
    "normalize_organization",
    "normalize_dataset",
    "normalize_resource",
    "dataset_payload",
    "resource_fields",
]
