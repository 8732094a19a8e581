"""
Datastore table migration for a single resource.

The whole table is read with one datastore_search call (limit = total); there
is no paging, so very large tables are held in memory in full. A read that
returns fewer rows than the reported total fails instead of copying a
truncated table.
"""

import logging
from typing import Any, Dict, List

from ..catalog.client import CatalogClient
from ..exceptions import CatalogError, CatalogNotFoundError, TabularMigrationError
from ..models import Context, Mode, TabularTable

logger = logging.getLogger(__name__)

ROW_ID_FIELD = "_id"


def strip_row_ids(fields: List[Dict[str, Any]], records: List[Dict[str, Any]]) -> TabularTable:
    """Drop the store-assigned ``_id`` column from field descriptors and rows."""
    return TabularTable(
        fields=[dict(f) for f in fields if f.get("id") != ROW_ID_FIELD],
        records=[{k: v for k, v in r.items() if k != ROW_ID_FIELD} for r in records],
    )


def fetch_table(client: CatalogClient, ctx: Context, resource_id: str) -> TabularTable:
    # zero-row probe for the field list and row count
    probe = client.search_tabular(ctx, resource_id, limit=0, include_total=True)
    fields = probe.get("fields") or []
    total = int(probe.get("total") or 0)

    result = client.search_tabular(ctx, resource_id, limit=total)
    records = result.get("records") or []
    # the store silently caps limit (ckan.datastore.search.rows_max)
    if len(records) != total:
        raise CatalogError("datastore_search",
                           f"expected {total} rows for {resource_id}, received {len(records)}")
    return strip_row_ids(fields, records)


def migrate_table(
    client: CatalogClient,
    source: Context,
    destination: Context,
    source_resource_id: str,
    destination_resource_id: str,
    mode: Mode,
    *,
    resource_name: str = "",
) -> int:
    """
    Copy one resource's datastore table from source to destination and return
    the number of rows written.

    On the update path the destination table is dropped first, since the store
    cannot replace a schema in place.
    """
    label = resource_name or source_resource_id
    try:
        table = fetch_table(client, source, source_resource_id)
        logger.info("Fetched %d field(s), %d row(s) for %s",
                    len(table.fields), table.row_count, label)

        if mode is Mode.UPDATE:
            try:
                client.delete_tabular(destination, destination_resource_id)
            except CatalogNotFoundError:
                logger.info("No existing destination table for %s", label)

        client.create_tabular(destination, {
            "resource_id": destination_resource_id,
            "fields": table.fields,
            "records": table.records,
            "force": True,
        })
    except CatalogError as e:
        raise TabularMigrationError(
            f"Datastore migration failed for {label!r}: {e}", resource=label, cause=e
        ) from e
    return table.row_count


__all__ = ["strip_row_ids", "fetch_table", "migrate_table", "ROW_ID_FIELD"]
