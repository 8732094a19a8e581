"""Copy CKAN datasets (metadata, files and datastore tables) between catalog instances."""

__version__ = "0.1.0"

from .core import DeletionCoordinator, MigrationCoordinator, delete_dataset, migrate  # noqa: E402
from .models import Context, RunResult, RunStatus  # noqa: E402

__all__ = [
    "__version__",
    "Context",
    "RunResult",
    "RunStatus",
    "MigrationCoordinator",
    "DeletionCoordinator",
    "migrate",
    "delete_dataset",
]
