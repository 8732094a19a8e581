"""CKAN catalog interaction package."""

from .client import CatalogClient

__all__ = ["CatalogClient"]
