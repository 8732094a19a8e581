import logging
from typing import List, Optional

from ..catalog.client import CatalogClient
from ..exceptions import CatalogError, CatalogNotFoundError, DeletionOrderError, FatalResolutionError
from ..models import Context, ResourceOutcome, RunResult, RunStatus
from ..transformer.normalizer import normalize_dataset, normalize_resource


class DeletionCoordinator:
    """
    Removes a dataset from one catalog.

    Resources go first, one at a time and each with its datastore table,
    because deleting at dataset level leaves datastore tables behind. The
    first failure stops the teardown and leaves the dataset and the remaining
    resources in place.
    """

    def __init__(self, client: Optional[CatalogClient] = None, *, purge: bool = True,
                 logger: Optional[logging.Logger] = None) -> None:
        self._client = client or CatalogClient()
        self._purge = bool(purge)
        self.logger = logger or logging.getLogger(__name__)

    def _resolve(self, context: Context) -> bool:
        if context.dataset is not None and context.dataset.id:
            return True
        ref = context.dataset_ref
        if not ref:
            raise FatalResolutionError("Context names no dataset to delete")
        try:
            raw = self._client.show_dataset(context, ref)
        except CatalogNotFoundError:
            return False
        except CatalogError as e:
            raise FatalResolutionError(f"Cannot read dataset {ref!r}: {e}", cause=e) from e
        context.dataset = normalize_dataset(raw)
        context.resources = [normalize_resource(r) for r in raw.get("resources") or []]
        return True

    def delete(self, context: Context) -> RunResult:
        if not self._resolve(context):
            self.logger.warning("Dataset %r not found on %s", context.dataset_ref, context.base_url)
            return RunResult(operation="delete", status=RunStatus.NOT_FOUND, dataset_name=context.dataset_ref)

        dataset = context.dataset
        result = RunResult(operation="delete", status=RunStatus.COMPLETED,
                           dataset_id=dataset.id, dataset_name=dataset.name)
        outcomes: List[ResourceOutcome] = result.outcomes
        self.logger.info("Deleting %r (%d resource(s)) from %s",
                         dataset.name, len(context.resources), context.base_url)

        for resource in context.resources:
            outcome = ResourceOutcome(name=resource.name, source_id=resource.id, url_type=resource.url_type)
            outcomes.append(outcome)
            try:
                if resource.is_tabular_active:
                    try:
                        self._client.delete_tabular(context, resource.id)
                    except CatalogNotFoundError:
                        # dropped by an earlier, interrupted teardown
                        self.logger.info("No datastore table left for %r", resource.name)
                self._client.delete_resource(context, resource.id)
            except CatalogError as e:
                err = DeletionOrderError(
                    f"Deleting resource {resource.name!r} ({resource.id}) failed: {e}",
                    resource=resource.name, cause=e)
                outcome.error = err
                result.status = RunStatus.FAILED
                result.error = err
                self.logger.error("%s; dataset %r left in place", err, dataset.name)
                return result
            self.logger.info("Deleted resource %r", resource.name)

        action = self._client.purge_dataset if self._purge else self._client.delete_dataset
        try:
            action(context, dataset.id)
        except CatalogError as e:
            err = DeletionOrderError(f"Removing dataset {dataset.name!r} failed: {e}", cause=e)
            result.status = RunStatus.FAILED
            result.error = err
            self.logger.error("%s", err)
            return result

        self.logger.info("%s dataset %r", "Purged" if self._purge else "Deleted", dataset.name)
        context.resources = []
        return result


def delete_dataset(context: Context, *, purge: bool = True,
                   client: Optional[CatalogClient] = None) -> RunResult:
    return DeletionCoordinator(client, purge=purge).delete(context)


__all__ = ["DeletionCoordinator", "delete_dataset"]
