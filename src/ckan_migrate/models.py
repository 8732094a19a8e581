"""
Internal shapes for one migration run: the per-instance Context, the catalog
entities it resolves (organization, dataset, resources, datastore table) and
the RunResult handed back to the caller.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit


class Mode(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"


class UrlType(str, enum.Enum):
    LINK = "link"
    UPLOAD = "upload"


class RunStatus(str, enum.Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    NOT_FOUND = "not_found"


@dataclass
class Organization:
    id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass
class Dataset:
    id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    notes: Optional[str] = None
    collection_method: Optional[str] = None
    excerpt: Optional[str] = None
    limitations: Optional[str] = None
    information_url: Optional[str] = None
    category: Optional[str] = None
    is_retired: Optional[Any] = None
    refresh_rate: Optional[str] = None
    topics: Optional[Any] = None
    owner_division: Optional[str] = None
    owner_section: Optional[str] = None
    owner_unit: Optional[str] = None
    owner_email: Optional[str] = None
    image_url: Optional[str] = None
    owner_org_id: Optional[str] = None
    is_private: Optional[bool] = None


@dataclass
class Resource:
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_tabular_active: bool = False
    url: Optional[str] = None
    url_type: UrlType = UrlType.LINK
    extract_job: Optional[str] = None
    format: Optional[str] = None


@dataclass
class TabularTable:
    """Datastore content of one resource, already stripped of ``_id``."""

    fields: List[Dict[str, Any]] = field(default_factory=list)
    records: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.records)


_ACTION_SUFFIXES = ("/api/3/action", "/api/3", "/api")


@dataclass
class Context:
    """
    Handle on one catalog instance: where it lives, the key to use and the
    entities resolved for it during a run. Source and destination each get
    their own Context; nothing is shared between them.
    """

    base_url: str
    api_key: Optional[str] = None
    organization_ref: Optional[str] = None
    dataset_ref: Optional[str] = None
    organization: Optional[Organization] = None
    dataset: Optional[Dataset] = None
    resources: List[Resource] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.base_url = self._clean_base_url(self.base_url)
        key = (self.api_key or "").strip()
        self.api_key = key or None
        self.organization_ref = (self.organization_ref or "").strip() or None
        self.dataset_ref = (self.dataset_ref or "").strip() or None

    @staticmethod
    def _clean_base_url(url: str) -> str:
        if not url or not isinstance(url, str):
            raise ValueError("Context requires a base_url")
        parts = urlsplit(url.strip())
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"Context base_url must be an absolute http(s) URL: {url!r}")
        path = parts.path.rstrip("/")
        for suffix in _ACTION_SUFFIXES:
            if path.endswith(suffix):
                path = path[: -len(suffix)]
                break
        return f"{parts.scheme}://{parts.netloc}{path}"

    @classmethod
    def from_dataset_url(cls, url: str, api_key: Optional[str] = None,
                         organization_ref: Optional[str] = None) -> "Context":
        """Build a Context from a dataset page URL such as ``https://host/dataset/<name>``."""
        parts = urlsplit((url or "").strip())
        head, sep, tail = parts.path.partition("/dataset/")
        name = tail.strip("/").split("/")[0] if sep else ""
        if not name:
            raise ValueError(f"Not a dataset URL (expected <base>/dataset/<name>): {url!r}")
        return cls(
            base_url=f"{parts.scheme}://{parts.netloc}{head}",
            api_key=api_key,
            organization_ref=organization_ref,
            dataset_ref=name,
        )

    def action_url(self, action: str) -> str:
        return f"{self.base_url}/api/3/action/{action}"


@dataclass
class ResourceOutcome:
    name: Optional[str]
    source_id: Optional[str] = None
    destination_id: Optional[str] = None
    mode: Optional[Mode] = None
    url_type: Optional[UrlType] = None
    tabular_rows: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    operation: str
    status: RunStatus
    dataset_id: Optional[str] = None
    dataset_name: Optional[str] = None
    outcomes: List[ResourceOutcome] = field(default_factory=list)
    published: bool = False
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def failures(self) -> List[ResourceOutcome]:
        return [o for o in self.outcomes if not o.ok]


__all__ = [
    "Mode",
    "UrlType",
    "RunStatus",
    "Organization",
    "Dataset",
    "Resource",
    "TabularTable",
    "Context",
    "ResourceOutcome",
    "RunResult",
]
