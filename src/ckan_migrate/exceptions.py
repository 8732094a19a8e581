"""Errors raised by the catalog client and the migration coordinators."""

from typing import Optional


class CatalogError(Exception):
    """A catalog action failed (HTTP error, ``success: false`` or transport error)."""

    def __init__(self, action: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{action} failed ({status if status is not None else 'no response'}): {message}")
        self.action = action
        self.message = message
        self.status = status


class CatalogNotFoundError(CatalogError):
    """The catalog answered 404 for the requested entity."""


class MigrationError(Exception):
    """Base class for coordinator errors; wraps the failing CatalogError when there is one."""

    def __init__(self, message: str, *, resource: Optional[str] = None,
                 cause: Optional[CatalogError] = None) -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.action = cause.action if cause is not None else None
        self.status = cause.status if cause is not None else None
        if cause is not None:
            self.__cause__ = cause


class FatalResolutionError(MigrationError):
    """Source dataset or destination organization/dataset could not be resolved."""


class ResourceTransferError(MigrationError):
    """File download/upload or resource metadata write failed for one resource."""


class TabularMigrationError(MigrationError):
    """Discovery, fetch, delete or create of one resource's datastore table failed."""


class DeletionOrderError(MigrationError):
    """A resource (or the dataset itself) could not be deleted during teardown."""


__all__ = [
    "CatalogError",
    "CatalogNotFoundError",
    "MigrationError",
    "FatalResolutionError",
    "ResourceTransferError",
    "TabularMigrationError",
    "DeletionOrderError",
]
