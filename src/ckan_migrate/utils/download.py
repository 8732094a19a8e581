import logging
import sys
from dataclasses import dataclass
from io import BytesIO
from typing import Optional
from urllib.parse import unquote, urlsplit

import requests
from tqdm import tqdm

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class DownloadedFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def filename_for(resp: requests.Response, url: str, default: str = "file.bin") -> str:
    """Prefer the Content-Disposition name, then the last URL path segment."""
    cd = resp.headers.get("Content-Disposition", "")
    if "filename=" in cd:
        name = cd.split("filename=", 1)[-1].split(";")[0].strip().strip('"')
        if name:
            return name
    tail = unquote(urlsplit(url).path.rstrip("/").split("/")[-1])
    return tail or default


def read_stream(resp: requests.Response, *, desc: str) -> bytes:
    """
    Read a streamed response body into memory, with a progress bar when
    stdout is a terminal.
    """
    total_hdr = resp.headers.get("Content-Length")
    total = int(total_hdr) if total_hdr and total_hdr.isdigit() else None

    buf = BytesIO()
    bar = tqdm(total=total, unit="B", unit_scale=True, unit_divisor=1024,
               desc=desc, disable=not sys.stdout.isatty())
    try:
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            buf.write(chunk)
            bar.update(len(chunk))
    finally:
        bar.close()
    logger.debug("Read %d bytes for %s", buf.tell(), desc)
    return buf.getvalue()


def to_downloaded_file(resp: requests.Response, url: str, desc: Optional[str] = None) -> DownloadedFile:
    name = filename_for(resp, url)
    content = read_stream(resp, desc=desc or name)
    content_type = resp.headers.get("Content-Type") or "application/octet-stream"
    return DownloadedFile(filename=name, content=content, content_type=content_type)
