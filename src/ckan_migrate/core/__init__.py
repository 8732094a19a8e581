"""
Core package: orchestration of migration and deletion runs.
Exposes the coordinators that tie the catalog client and the normalizer
together, plus the function entry points built on them.
"""

from .coordinator import MigrationCoordinator, migrate
from .deletion import DeletionCoordinator, delete_dataset

__all__ = [
    "MigrationCoordinator",
    "DeletionCoordinator",
    "migrate",
    "delete_dataset",
]
