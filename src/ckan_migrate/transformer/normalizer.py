from typing import Any, Dict, Mapping, Optional, Tuple

from ..models import Dataset, Mode, Organization, Resource, UrlType


# (attribute, wire key) allow-lists. Anything a catalog returns outside these
# lists (revision ids, timestamps, audit and plugin fields) is dropped.
ORGANIZATION_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("name", "name"),
    ("title", "title"),
    ("description", "description"),
)

DATASET_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("name", "name"),
    ("title", "title"),
    ("notes", "notes"),
    ("collection_method", "collection_method"),
    ("excerpt", "excerpt"),
    ("limitations", "limitations"),
    ("information_url", "information_url"),
    ("category", "dataset_category"),
    ("is_retired", "is_retired"),
    ("refresh_rate", "refresh_rate"),
    ("topics", "topics"),
    ("owner_division", "owner_division"),
    ("owner_section", "owner_section"),
    ("owner_unit", "owner_unit"),
    ("owner_email", "owner_email"),
    ("image_url", "image_url"),
    ("owner_org_id", "owner_org"),
    ("is_private", "private"),
)

RESOURCE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("name", "name"),
    ("description", "description"),
    ("is_tabular_active", "datastore_active"),
    ("url", "url"),
    ("url_type", "url_type"),
    ("extract_job", "extract_job"),
    ("format", "format"),
)


def _project(raw: Optional[Mapping[str, Any]], fields: Tuple[Tuple[str, str], ...], kind: str) -> Dict[str, Any]:
    if raw is None:
        raise ValueError(f"Cannot normalize a missing {kind}")
    return {attr: raw.get(key) for attr, key in fields}


def normalize_organization(raw: Optional[Mapping[str, Any]]) -> Organization:
    return Organization(**_project(raw, ORGANIZATION_FIELDS, "organization"))


def normalize_dataset(raw: Optional[Mapping[str, Any]]) -> Dataset:
    values = _project(raw, DATASET_FIELDS, "dataset")
    # some catalogs only embed the organization object
    if values["owner_org_id"] is None and isinstance(raw.get("organization"), Mapping):
        values["owner_org_id"] = raw["organization"].get("id")
    return Dataset(**values)


def normalize_resource(raw: Optional[Mapping[str, Any]]) -> Resource:
    values = _project(raw, RESOURCE_FIELDS, "resource")
    values["is_tabular_active"] = bool(values["is_tabular_active"])
    values["url_type"] = UrlType.UPLOAD if values["url_type"] == "upload" else UrlType.LINK
    return Resource(**values)


def dataset_payload(dataset: Dataset, mode: Mode) -> Dict[str, Any]:
    """
    Wire payload for package_create / package_update.

    Unset attributes are left out rather than sent as null. ``id`` is only
    sent on update; create lets the destination assign one.
    """
    payload = {key: getattr(dataset, attr) for attr, key in DATASET_FIELDS}
    payload = {k: v for k, v in payload.items() if v is not None}
    if mode is Mode.CREATE:
        payload.pop("id", None)
    elif not dataset.id:
        raise ValueError(f"Updating dataset {dataset.name!r} requires its destination id")
    return payload


def resource_fields(resource: Resource) -> Dict[str, str]:
    """Plain form fields for resource_create / resource_update (the file part is added by the client)."""
    fields = {"name": resource.name or "", "format": resource.format or ""}
    if resource.url_type is UrlType.LINK:
        fields["url"] = resource.url or ""
    return fields


__all__ = [
    "ORGANIZATION_FIELDS",
    "DATASET_FIELDS",
    "RESOURCE_FIELDS",
    "normalize_organization",
    "normalize_dataset",
    "normalize_resource",
    "dataset_payload",
    "resource_fields",
]
