import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit

import requests
from requests import HTTPError

from .. import __version__
from ..exceptions import CatalogError, CatalogNotFoundError
from ..models import Context, Dataset, Mode, Resource, UrlType
from ..transformer.normalizer import dataset_payload, resource_fields
from ..utils.download import DownloadedFile, to_downloaded_file

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class CatalogClient:
    """
    Thin wrapper around the CKAN action API (``<base>/api/3/action/<verb>``).

    Every method takes the Context to talk to, so one client serves both the
    source and the destination of a run. Methods return the ``result`` member
    of the response envelope and raise CatalogError (CatalogNotFoundError on
    404) otherwise. Nothing is cached between calls.
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT) -> None:
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": f"ckan-migrate/{__version__}",
            }
        )
        self.timeout = timeout

    # -------------------------------------------------------------------------
    # Low-level HTTP helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _headers(ctx: Context) -> Dict[str, str]:
        return {"Authorization": ctx.api_key} if ctx.api_key else {}

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return (resp.text or resp.reason or "").strip()[:500]
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            msg = error.get("message")
            if msg:
                return str(msg)
            details = {k: v for k, v in error.items() if k != "__type"}
            return f"{error.get('__type', 'Error')}: {details}" if details else str(error.get("__type", error))
        return str(error or body)

    def _raise_for(self, action: str, resp: requests.Response) -> CatalogError:
        cls = CatalogNotFoundError if resp.status_code == 404 else CatalogError
        return cls(action, self._error_message(resp), resp.status_code)

    def _call(
        self,
        ctx: Context,
        action: str,
        *,
        method: str = "POST",
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if method == "POST" and not ctx.api_key:
            raise CatalogError(action, f"no API key configured for {ctx.base_url}")

        url = ctx.action_url(action)
        logger.debug("%s %s", method, url)
        try:
            resp = self._session.request(
                method,
                url,
                params=params,
                json=json_data,
                files=files,
                headers=self._headers(ctx),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CatalogError(action, str(e)) from e

        try:
            resp.raise_for_status()
        except HTTPError as e:
            raise self._raise_for(action, resp) from e

        try:
            body = resp.json()
        except ValueError as e:
            raise CatalogError(action, "response is not JSON", resp.status_code) from e
        if not isinstance(body, dict) or not body.get("success"):
            raise self._raise_for(action, resp)
        return body.get("result")

    # -------------------------------------------------------------------------
    # Organizations & datasets
    # -------------------------------------------------------------------------

    def show_organization(self, ctx: Context, name_or_id: str) -> Dict[str, Any]:
        return self._call(ctx, "organization_show", method="GET", params={"id": name_or_id})

    def show_dataset(self, ctx: Context, id_or_name: str) -> Dict[str, Any]:
        return self._call(ctx, "package_show", method="GET", params={"id": id_or_name})

    def create_or_update_dataset(self, ctx: Context, dataset: Dataset, mode: Mode, *,
                                 resources: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        ``resources`` is passed through verbatim on update. Older CKAN releases
        delete every resource a package_update leaves out.
        """
        action = "package_create" if mode is Mode.CREATE else "package_update"
        payload = dataset_payload(dataset, mode)
        if mode is Mode.UPDATE and resources is not None:
            payload["resources"] = resources
        return self._call(ctx, action, json_data=payload)

    def patch_dataset_visibility(self, ctx: Context, dataset_id: str, is_private: bool) -> Dict[str, Any]:
        return self._call(ctx, "package_patch", json_data={"id": dataset_id, "private": bool(is_private)})

    def purge_dataset(self, ctx: Context, dataset_id: str) -> Any:
        return self._call(ctx, "dataset_purge", json_data={"id": dataset_id})

    def delete_dataset(self, ctx: Context, dataset_id: str) -> Any:
        """Soft delete (the dataset stays in the trash and can be restored by a sysadmin)."""
        return self._call(ctx, "package_delete", json_data={"id": dataset_id})

    # -------------------------------------------------------------------------
    # Resources
    # -------------------------------------------------------------------------

    def create_or_update_resource(
        self,
        ctx: Context,
        resource: Resource,
        mode: Mode,
        *,
        package_id: Optional[str] = None,
        upload: Optional[DownloadedFile] = None,
    ) -> Dict[str, Any]:
        """
        Submit resource metadata as multipart form data.

        create: ``package_id`` is required and ``resource.id`` is ignored.
        update: ``resource.id`` must be the destination resource id.
        ``upload`` carries the file part for ``url_type == upload`` resources;
        link resources send their ``url`` field instead.
        """
        if mode is Mode.CREATE:
            if not package_id:
                raise ValueError("resource_create requires a package_id")
            action, owner = "resource_create", {"package_id": package_id}
        else:
            if not resource.id:
                raise ValueError(f"resource_update for {resource.name!r} requires a destination id")
            action, owner = "resource_update", {"id": resource.id}

        fields = {**resource_fields(resource), **owner}
        files: Dict[str, Any] = {k: (None, v) for k, v in fields.items()}
        if resource.url_type is UrlType.UPLOAD:
            if upload is None:
                raise ValueError(f"upload resource {resource.name!r} needs file content")
            files["upload"] = (upload.filename, upload.content, upload.content_type)
        return self._call(ctx, action, files=files)

    def delete_resource(self, ctx: Context, resource_id: str) -> Any:
        return self._call(ctx, "resource_delete", json_data={"id": resource_id})

    def fetch_file(self, ctx: Context, url: str) -> DownloadedFile:
        """Download a resource file. The context key is only sent to the context's own host."""
        headers: Dict[str, str] = {}
        if urlsplit(url).netloc == urlsplit(ctx.base_url).netloc:
            headers = self._headers(ctx)
        try:
            resp = self._session.get(url, headers=headers, stream=True,
                                     allow_redirects=True, timeout=self.timeout)
            resp.raise_for_status()
        except HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise CatalogError("resource_download", f"{url}: {e}", status) from e
        except requests.RequestException as e:
            raise CatalogError("resource_download", f"{url}: {e}") from e

        try:
            return to_downloaded_file(resp, url)
        except requests.RequestException as e:
            raise CatalogError("resource_download", f"{url}: {e}", resp.status_code) from e
        finally:
            resp.close()

    # -------------------------------------------------------------------------
    # Datastore (tabular tables)
    # -------------------------------------------------------------------------

    def search_tabular(self, ctx: Context, resource_id: str, *, limit: int,
                       include_total: bool = False) -> Dict[str, Any]:
        params: Dict[str, Any] = {"resource_id": resource_id, "limit": int(limit)}
        if include_total:
            params["include_total"] = "true"
        return self._call(ctx, "datastore_search", method="GET", params=params)

    def create_tabular(self, ctx: Context, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._call(ctx, "datastore_create", json_data=dict(payload))

    def delete_tabular(self, ctx: Context, resource_id: str) -> Any:
        return self._call(ctx, "datastore_delete", json_data={"resource_id": resource_id, "force": True})


__all__ = ["CatalogClient", "DEFAULT_TIMEOUT"]
