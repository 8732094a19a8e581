import logging
from pathlib import Path

import pandas as pd

from ..models import RunResult

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "operation",
    "dataset",
    "resource",
    "mode",
    "url_type",
    "source_id",
    "destination_id",
    "tabular_rows",
    "ok",
    "error",
]


def outcomes_frame(result: RunResult) -> pd.DataFrame:
    """One row per resource outcome of a run."""
    rows = []
    for o in result.outcomes:
        rows.append({
            "operation": result.operation,
            "dataset": result.dataset_name,
            "resource": o.name,
            "mode": o.mode.value if o.mode else None,
            "url_type": o.url_type.value if o.url_type else None,
            "source_id": o.source_id,
            "destination_id": o.destination_id,
            "tabular_rows": o.tabular_rows,
            "ok": o.ok,
            "error": str(o.error) if o.error else None,
        })
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def write_report(result: RunResult, path: Path) -> Path:
    df = outcomes_frame(result)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Wrote %d outcome row(s) to %s", len(df), path)
    return path
