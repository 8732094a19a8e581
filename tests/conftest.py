"""Shared fixtures: an in-memory, call-recording stand-in for CatalogClient.

FakeCatalogClient keeps one small catalog per base URL, so a single instance
plays both the source and the destination of a run. Every call is appended
to ``calls`` as ``(base_url, action, detail)`` for ordering assertions.
"""

from __future__ import annotations

import copy
import itertools
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from ckan_migrate.exceptions import CatalogError, CatalogNotFoundError
from ckan_migrate.models import Context, Dataset, Mode, Resource
from ckan_migrate.transformer.normalizer import dataset_payload, resource_fields
from ckan_migrate.utils.download import DownloadedFile

SOURCE_URL = "https://source.example.org"
DEST_URL = "https://mirror.example.org"


class _Instance:
    def __init__(self) -> None:
        self.organizations: Dict[str, Dict[str, Any]] = {}
        self.datasets: Dict[str, Dict[str, Any]] = {}
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.tables: Dict[str, Dict[str, Any]] = {}
        self.files: Dict[str, bytes] = {}


class FakeCatalogClient:
    def __init__(self) -> None:
        self.instances: Dict[str, _Instance] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self._fail: Set[Tuple[str, Optional[str]]] = set()
        self._ids = itertools.count(1)
        self.last_tabular_payload: Optional[Dict[str, Any]] = None

    # ---------- test helpers ----------
    def _inst(self, base_url: str) -> _Instance:
        return self.instances.setdefault(base_url, _Instance())

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def fail_on(self, action: str, key: Optional[str] = None) -> None:
        """Make ``action`` fail (for one id/name only when ``key`` is given)."""
        self._fail.add((action, key))

    def _record(self, ctx: Context, action: str, detail: Any = None) -> None:
        self.calls.append((ctx.base_url, action, detail))
        key = detail if isinstance(detail, str) else None
        if (action, None) in self._fail or (action, key) in self._fail:
            raise CatalogError(action, "simulated failure", 500)

    def actions(self, base_url: Optional[str] = None) -> List[str]:
        return [a for b, a, _ in self.calls if base_url is None or b == base_url]

    def add_organization(self, base_url: str, name: str, **extra: Any) -> Dict[str, Any]:
        org = {"id": self._new_id("org"), "name": name, "title": name.title(),
               "description": "", "created": "2024-01-01T00:00:00", **extra}
        self._inst(base_url).organizations[org["id"]] = org
        return org

    def add_dataset(self, base_url: str, org: Dict[str, Any], name: str, **extra: Any) -> Dict[str, Any]:
        ds = {"id": self._new_id("pkg"), "name": name, "owner_org": org["id"], "private": False,
              "metadata_created": "2024-01-01T00:00:00", "revision_id": "rev-1", **extra}
        self._inst(base_url).datasets[ds["id"]] = ds
        return ds

    def add_resource(self, base_url: str, dataset: Dict[str, Any], name: str, *,
                     url_type: str = "", content: Optional[bytes] = None,
                     rows: Optional[List[Dict[str, Any]]] = None,
                     fields: Optional[List[Dict[str, Any]]] = None, **extra: Any) -> Dict[str, Any]:
        rid = self._new_id("res")
        inst = self._inst(base_url)
        if url_type == "upload":
            url = f"{base_url}/dataset/{dataset['id']}/resource/{rid}/download/{name}"
        else:
            url = extra.pop("url", f"https://elsewhere.example.com/{name}")
        res = {"id": rid, "package_id": dataset["id"], "name": name, "url": url,
               "url_type": url_type, "format": "CSV", "description": f"{name} file",
               "datastore_active": rows is not None, "position": len(self._resources_of(inst, dataset["id"])),
               "last_modified": "2024-01-02T00:00:00", **extra}
        inst.resources[rid] = res
        if content is not None:
            inst.files[url] = content
        if rows is not None:
            self._store_table(inst, rid, fields or [{"id": k, "type": "text"} for k in rows[0]], rows)
        return res

    @staticmethod
    def _store_table(inst: _Instance, rid: str, fields: List[Dict[str, Any]], rows: List[Dict[str, Any]]) -> None:
        inst.tables[rid] = {
            "fields": [{"id": "_id", "type": "int"}] + [dict(f) for f in fields],
            "records": [{"_id": i + 1, **r} for i, r in enumerate(rows)],
        }

    @staticmethod
    def _resources_of(inst: _Instance, dataset_id: str) -> List[Dict[str, Any]]:
        return sorted((r for r in inst.resources.values() if r["package_id"] == dataset_id),
                      key=lambda r: r["position"])

    def _find_dataset(self, inst: _Instance, ref: str) -> Optional[Dict[str, Any]]:
        for ds in inst.datasets.values():
            if ref in (ds["id"], ds["name"]):
                return ds
        return None

    def _dataset_view(self, inst: _Instance, ds: Dict[str, Any]) -> Dict[str, Any]:
        view = copy.deepcopy(ds)
        org = inst.organizations.get(ds.get("owner_org"))
        view["organization"] = copy.deepcopy(org) if org else None
        view["resources"] = copy.deepcopy(self._resources_of(inst, ds["id"]))
        return view

    # ---------- CatalogClient surface ----------
    def show_organization(self, ctx: Context, name_or_id: str) -> Dict[str, Any]:
        self._record(ctx, "organization_show", name_or_id)
        for org in self._inst(ctx.base_url).organizations.values():
            if name_or_id in (org["id"], org["name"]):
                return copy.deepcopy(org)
        raise CatalogNotFoundError("organization_show", "Not found", 404)

    def show_dataset(self, ctx: Context, id_or_name: str) -> Dict[str, Any]:
        self._record(ctx, "package_show", id_or_name)
        inst = self._inst(ctx.base_url)
        ds = self._find_dataset(inst, id_or_name)
        if ds is None:
            raise CatalogNotFoundError("package_show", "Not found", 404)
        return self._dataset_view(inst, ds)

    def create_or_update_dataset(self, ctx: Context, dataset: Dataset, mode: Mode, *,
                                 resources: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        payload = dataset_payload(dataset, mode)
        if mode is Mode.UPDATE and resources is not None:
            payload["resources"] = copy.deepcopy(resources)
        action = "package_create" if mode is Mode.CREATE else "package_update"
        self._record(ctx, action, payload)
        inst = self._inst(ctx.base_url)
        if mode is Mode.CREATE:
            if self._find_dataset(inst, payload["name"]) is not None:
                raise CatalogError(action, "That URL is already in use.", 409)
            ds = {**payload, "id": self._new_id("pkg"), "metadata_created": "2024-06-01T00:00:00"}
            inst.datasets[ds["id"]] = ds
        else:
            ds = inst.datasets[payload["id"]]
            kept = {r["id"] for r in payload.get("resources") or []}
            # like CKAN <= 2.9, resources left out of package_update are dropped
            for rid in [r["id"] for r in self._resources_of(inst, ds["id"]) if r["id"] not in kept]:
                inst.resources.pop(rid)
                inst.tables.pop(rid, None)
            ds.update({k: v for k, v in payload.items() if k != "resources"})
        return self._dataset_view(inst, ds)

    def patch_dataset_visibility(self, ctx: Context, dataset_id: str, is_private: bool) -> Dict[str, Any]:
        self._record(ctx, "package_patch", dataset_id)
        inst = self._inst(ctx.base_url)
        inst.datasets[dataset_id]["private"] = is_private
        return self._dataset_view(inst, inst.datasets[dataset_id])

    def purge_dataset(self, ctx: Context, dataset_id: str) -> None:
        self._record(ctx, "dataset_purge", dataset_id)
        self._inst(ctx.base_url).datasets.pop(dataset_id)

    def delete_dataset(self, ctx: Context, dataset_id: str) -> None:
        self._record(ctx, "package_delete", dataset_id)
        self._inst(ctx.base_url).datasets[dataset_id]["state"] = "deleted"

    def create_or_update_resource(self, ctx: Context, resource: Resource, mode: Mode, *,
                                  package_id: Optional[str] = None,
                                  upload: Optional[DownloadedFile] = None) -> Dict[str, Any]:
        fields = resource_fields(resource)
        action = "resource_create" if mode is Mode.CREATE else "resource_update"
        self._record(ctx, action, {**fields, "package_id": package_id, "id": resource.id,
                                   "upload": upload.filename if upload else None})
        inst = self._inst(ctx.base_url)
        if mode is Mode.CREATE:
            rid = self._new_id("res")
            res = {"id": rid, "package_id": package_id, "datastore_active": False,
                   "position": len(self._resources_of(inst, package_id))}
        else:
            rid = resource.id
            res = inst.resources[rid]
        res.update({k: v for k, v in fields.items() if k != "url"})
        if upload is not None:
            res["url_type"] = "upload"
            res["url"] = f"{ctx.base_url}/dataset/{res['package_id']}/resource/{rid}/download/{upload.filename}"
            inst.files[res["url"]] = upload.content
        else:
            res["url_type"] = ""
            res["url"] = fields.get("url", "")
        inst.resources[rid] = res
        return copy.deepcopy(res)

    def delete_resource(self, ctx: Context, resource_id: str) -> None:
        self._record(ctx, "resource_delete", resource_id)
        self._inst(ctx.base_url).resources.pop(resource_id)

    def fetch_file(self, ctx: Context, url: str) -> DownloadedFile:
        self._record(ctx, "resource_download", url)
        content = self._inst(ctx.base_url).files.get(url)
        if content is None:
            raise CatalogError("resource_download", f"{url}: 404 Not Found", 404)
        return DownloadedFile(filename=url.rsplit("/", 1)[-1], content=content, content_type="text/csv")

    def search_tabular(self, ctx: Context, resource_id: str, *, limit: int,
                       include_total: bool = False) -> Dict[str, Any]:
        self._record(ctx, "datastore_search", resource_id)
        table = self._inst(ctx.base_url).tables.get(resource_id)
        if table is None:
            raise CatalogNotFoundError("datastore_search", "Resource not found", 404)
        result = {"resource_id": resource_id, "fields": copy.deepcopy(table["fields"]),
                  "records": copy.deepcopy(table["records"][:limit]), "limit": limit}
        if include_total:
            result["total"] = len(table["records"])
        return result

    def create_tabular(self, ctx: Context, payload: Dict[str, Any]) -> Dict[str, Any]:
        rid = payload["resource_id"]
        self._record(ctx, "datastore_create", rid)
        inst = self._inst(ctx.base_url)
        if rid in inst.tables:
            raise CatalogError("datastore_create", "table already exists", 409)
        self._store_table(inst, rid, payload["fields"], payload["records"])
        inst.resources[rid]["datastore_active"] = True
        self.last_tabular_payload = copy.deepcopy(payload)
        return {"resource_id": rid, "fields": payload["fields"]}

    def delete_tabular(self, ctx: Context, resource_id: str) -> Dict[str, Any]:
        self._record(ctx, "datastore_delete", resource_id)
        inst = self._inst(ctx.base_url)
        if resource_id not in inst.tables:
            raise CatalogNotFoundError("datastore_delete", "Resource not found", 404)
        del inst.tables[resource_id]
        if resource_id in inst.resources:
            inst.resources[resource_id]["datastore_active"] = False
        return {"resource_id": resource_id}


TRAIL_ROWS = [
    {"trail": "Ridge Loop", "km": 4.2},
    {"trail": "Creek Walk", "km": 1.8},
    {"trail": "Summit Path", "km": 7.5},
]


@pytest.fixture
def fake() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def parks(fake: FakeCatalogClient) -> Dict[str, Any]:
    """Source org "parks" with dataset "trails-2024" (one uploaded, datastore-backed CSV)
    and an empty destination org "parks-mirror"."""
    org = fake.add_organization(SOURCE_URL, "parks")
    ds = fake.add_dataset(SOURCE_URL, org, "trails-2024", title="Trails", notes="All trails",
                          dataset_category="Map", topics="Parks,Recreation")
    res = fake.add_resource(SOURCE_URL, ds, "trails.csv", url_type="upload",
                            content=b"trail,km\nRidge Loop,4.2\n", rows=TRAIL_ROWS)
    mirror = fake.add_organization(DEST_URL, "parks-mirror")
    return {"org": org, "dataset": ds, "resource": res, "mirror": mirror}


@pytest.fixture
def make_source():
    """Fresh source Context per call (contexts hold one run's resolved entities)."""
    def _make(dataset_ref: str = "trails-2024") -> Context:
        return Context(SOURCE_URL, api_key="src-key", dataset_ref=dataset_ref)
    return _make


@pytest.fixture
def make_destination():
    def _make(organization_ref: str = "parks-mirror") -> Context:
        return Context(DEST_URL, api_key="dst-key", organization_ref=organization_ref)
    return _make
