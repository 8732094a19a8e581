import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from ..catalog.client import CatalogClient
from ..exceptions import (
    CatalogError,
    CatalogNotFoundError,
    FatalResolutionError,
    MigrationError,
    ResourceTransferError,
)
from ..models import (
    Context,
    Dataset,
    Mode,
    Resource,
    ResourceOutcome,
    RunResult,
    RunStatus,
    UrlType,
)
from ..transformer.normalizer import normalize_dataset, normalize_organization, normalize_resource
from .tabular import migrate_table


class MigrationCoordinator:
    """
    Clones one dataset graph (dataset, resources, datastore tables) from a
    source Context into a destination Context.

    All calls are made one after the other; each step usually needs an id the
    previous one returned. Resource failures are collected in the RunResult
    and the run carries on with the next resource. Failing to resolve the
    source dataset, the destination organization or to write the destination
    dataset raises FatalResolutionError.
    """

    def __init__(self, client: Optional[CatalogClient] = None, *, publish: bool = False,
                 logger: Optional[logging.Logger] = None) -> None:
        self._client = client or CatalogClient()
        self._publish = bool(publish)
        self.logger = logger or logging.getLogger(__name__)

    # ---------- resolution ----------
    def _resolve_source(self, source: Context) -> bool:
        """Fill source.organization/dataset/resources. False when the dataset does not exist."""
        ref = source.dataset_ref or (source.dataset.name if source.dataset else None)
        if not ref:
            raise FatalResolutionError("Source context names no dataset to migrate")
        try:
            raw = self._client.show_dataset(source, ref)
        except CatalogNotFoundError:
            return False
        except CatalogError as e:
            raise FatalResolutionError(f"Cannot read source dataset {ref!r}: {e}", cause=e) from e

        if isinstance(raw.get("organization"), dict):
            source.organization = normalize_organization(raw["organization"])
        elif source.organization_ref:
            try:
                source.organization = normalize_organization(
                    self._client.show_organization(source, source.organization_ref))
            except CatalogError as e:
                raise FatalResolutionError(
                    f"Cannot read source organization {source.organization_ref!r}: {e}", cause=e) from e
        source.dataset = normalize_dataset(raw)
        source.resources = [normalize_resource(r) for r in raw.get("resources") or []]
        return True

    def _resolve_destination_organization(self, destination: Context) -> None:
        ref = destination.organization_ref
        if not ref:
            raise FatalResolutionError("Destination context requires an organization_ref")
        try:
            destination.organization = normalize_organization(
                self._client.show_organization(destination, ref))
        except CatalogError as e:
            raise FatalResolutionError(f"Cannot resolve destination organization {ref!r}: {e}", cause=e) from e
        if not destination.organization.id:
            raise FatalResolutionError(f"Destination organization {ref!r} has no id")

    def _find_destination_dataset(self, destination: Context, name: str) -> Optional[Dict[str, Any]]:
        ref = (destination.dataset.id if destination.dataset and destination.dataset.id
               else destination.dataset_ref or name)
        try:
            raw = self._client.show_dataset(destination, ref)
        except CatalogNotFoundError:
            return None
        except CatalogError as e:
            raise FatalResolutionError(f"Cannot look up destination dataset {ref!r}: {e}", cause=e) from e
        return raw

    # ---------- dataset ----------
    def _upsert_dataset(self, source_dataset: Dataset, destination: Context) -> List[Resource]:
        """Create or update the destination dataset; returns its pre-existing resources."""
        raw_existing = self._find_destination_dataset(destination, source_dataset.name)
        raw_resources: Optional[List[Dict[str, Any]]] = None

        if raw_existing is None:
            mode = Mode.CREATE
            # stays private until an explicit publish
            payload = replace(source_dataset, id=None, is_private=True)
        else:
            mode = Mode.UPDATE
            existing = normalize_dataset(raw_existing)
            raw_resources = list(raw_existing.get("resources") or [])
            payload = replace(source_dataset, id=existing.id, is_private=existing.is_private)
            if existing.name:
                payload.name = existing.name
        payload.owner_org_id = destination.organization.id

        self.logger.info("%s dataset %r on %s", mode.value.capitalize(), payload.name, destination.base_url)
        try:
            raw = self._client.create_or_update_dataset(destination, payload, mode, resources=raw_resources)
        except CatalogError as e:
            raise FatalResolutionError(f"Cannot {mode.value} destination dataset {payload.name!r}: {e}",
                                       cause=e) from e

        destination.dataset = normalize_dataset(raw)
        if not destination.dataset.id:
            raise FatalResolutionError(f"Destination returned no id for dataset {payload.name!r}")
        return [normalize_resource(r) for r in raw_resources or []]

    # ---------- resources ----------
    def _migrate_resource(
        self,
        resource: Resource,
        source: Context,
        destination: Context,
        by_name: Dict[str, Resource],
    ) -> Tuple[ResourceOutcome, Optional[Resource]]:
        match = by_name.get(resource.name)
        mode = Mode.UPDATE if match is not None else Mode.CREATE
        outcome = ResourceOutcome(name=resource.name, source_id=resource.id, mode=mode,
                                  url_type=resource.url_type)
        self.logger.info("Resource %r: %s (%s)", resource.name, mode.value, resource.url_type.value)

        try:
            upload = None
            if resource.url_type is UrlType.UPLOAD:
                upload = self._client.fetch_file(source, resource.url)
            target = replace(resource, id=match.id if match is not None else None)
            raw = self._client.create_or_update_resource(
                destination,
                target,
                mode,
                package_id=destination.dataset.id if mode is Mode.CREATE else None,
                upload=upload,
            )
        except CatalogError as e:
            outcome.error = ResourceTransferError(
                f"Transfer failed for resource {resource.name!r}: {e}", resource=resource.name, cause=e)
            return outcome, None

        landed = normalize_resource(raw)
        if not landed.id and match is not None:
            landed.id = match.id
        outcome.destination_id = landed.id

        if resource.is_tabular_active:
            try:
                outcome.tabular_rows = migrate_table(
                    self._client, source, destination, resource.id, landed.id, mode,
                    resource_name=resource.name or "",
                )
                landed.is_tabular_active = True
            except MigrationError as e:
                outcome.error = e
        return outcome, landed

    # ---------- main ----------
    def migrate(self, source: Context, destination: Context) -> RunResult:
        self.logger.info("Migrating %r from %s to %s", source.dataset_ref, source.base_url, destination.base_url)

        # 1) source graph
        if not self._resolve_source(source):
            self.logger.warning("Source dataset %r not found; nothing to migrate", source.dataset_ref)
            return RunResult(operation="migrate", status=RunStatus.NOT_FOUND, dataset_name=source.dataset_ref)
        self.logger.info("Source dataset %r has %d resource(s)", source.dataset.name, len(source.resources))

        # 2) destination organization
        self._resolve_destination_organization(destination)

        # 3) destination dataset, and its current resources (fetched once)
        existing = self._upsert_dataset(source.dataset, destination)
        by_name: Dict[str, Resource] = {}
        for r in existing:
            by_name.setdefault(r.name, r)

        # 4) resources, in source order
        outcomes: List[ResourceOutcome] = []
        landed_resources: List[Resource] = []
        for resource in source.resources:
            outcome, landed = self._migrate_resource(resource, source, destination, by_name)
            outcomes.append(outcome)
            if landed is not None:
                by_name[landed.name] = landed
                landed_resources.append(landed)
            if outcome.error is not None:
                self.logger.warning("Resource %r failed: %s", resource.name, outcome.error)
        # everything now on the destination dataset, latest state per id
        destination.resources = list({r.id: r for r in [*existing, *landed_resources]}.values())

        failed = [o for o in outcomes if not o.ok]
        result = RunResult(
            operation="migrate",
            status=RunStatus.PARTIAL if failed else RunStatus.COMPLETED,
            dataset_id=destination.dataset.id,
            dataset_name=destination.dataset.name,
            outcomes=outcomes,
        )

        # 5) publish only once every resource has landed
        if self._publish:
            if failed:
                self.logger.warning("Not publishing %r: %d resource(s) failed", result.dataset_name, len(failed))
            else:
                self._publish_dataset(destination, result)

        self.logger.info("Finished %r: %d ok, %d failed", result.dataset_name,
                         len(outcomes) - len(failed), len(failed))
        return result

    def _publish_dataset(self, destination: Context, result: RunResult) -> None:
        try:
            self._client.patch_dataset_visibility(destination, destination.dataset.id, False)
        except CatalogError as e:
            self.logger.warning("Publishing %r failed: %s", result.dataset_name, e)
            result.status = RunStatus.PARTIAL
            result.error = e
            return
        destination.dataset.is_private = False
        result.published = True
        self.logger.info("Published %r", result.dataset_name)


def migrate(source: Context, destination: Context, *, publish: bool = False,
            client: Optional[CatalogClient] = None) -> RunResult:
    return MigrationCoordinator(client, publish=publish).migrate(source, destination)


__all__ = ["MigrationCoordinator", "migrate"]
