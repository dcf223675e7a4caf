"""Concurrent asset downloading with bounded retries."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from filetype import guess

from .config import DownloadConfig
from .models import DownloadResult
from .utils import utc_timestamp

logger = logging.getLogger("cargo_mirror.downloader")

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "bmp", "tiff", "ico", "avif"}

SessionFactory = Callable[[], requests.Session]


@dataclass
class _Attempt:
    ok: bool
    attempts: int
    http_status: Optional[int]
    payload: bytes = b""
    error: Optional[str] = None


_EXTENSION_ALIASES = {"jpeg": "jpg", "tif": "tiff"}


def sniff_image_extension(data: bytes) -> Optional[str]:
    """Extension of the image type found in the payload signature, if any."""
    kind = guess(data)
    if not kind or not kind.mime.startswith("image/"):
        return None
    extension = kind.extension.lower()
    return _EXTENSION_ALIASES.get(extension, extension)


def _check_payload_type(url: str, data: bytes) -> None:
    path = url.split("?", 1)[0]
    expected = path.rsplit(".", 1)[-1].lower() if "." in path.rsplit("/", 1)[-1] else ""
    expected = _EXTENSION_ALIASES.get(expected, expected)
    if expected not in IMAGE_EXTENSIONS:
        return
    detected = sniff_image_extension(data)
    if detected != expected:
        logger.warning(
            "Downloaded %s looks like %s, expected %s", url, detected or "non-image", expected
        )


def download_with_retry(
    session: requests.Session,
    url: str,
    config: DownloadConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> _Attempt:
    """Fetch ``url``, backing off ``attempt * backoff_seconds`` between tries."""
    last_error = "Unknown error"
    last_status: Optional[int] = None
    for attempt in range(1, config.max_retries + 1):
        try:
            response = session.get(url, timeout=config.request_timeout)
            last_status = response.status_code
            if not 200 <= response.status_code < 300:
                raise requests.HTTPError(f"HTTP {response.status_code}", response=response)
            return _Attempt(True, attempt, response.status_code, response.content)
        except requests.RequestException as exc:
            last_error = str(exc) or exc.__class__.__name__
            logger.debug("Attempt %d for %s failed: %s", attempt, url, last_error)
        if attempt < config.max_retries:
            sleep(config.backoff_seconds * attempt)
    return _Attempt(False, config.max_retries, last_status, error=last_error)


def _fetch_entry(
    session: requests.Session,
    asset: Dict[str, Any],
    root: Path,
    config: DownloadConfig,
    sleep: Callable[[float], None],
) -> DownloadResult:
    fetch_url = asset.get("downloadUrl") or asset["url"]
    outcome = download_with_retry(session, fetch_url, config, sleep)
    if not outcome.ok:
        return DownloadResult(
            url=asset["url"],
            fetched_from=fetch_url,
            local_path=asset["localPath"],
            status="failed",
            attempts=outcome.attempts,
            http_status=outcome.http_status,
            bytes=0,
            error=outcome.error,
        )

    _check_payload_type(fetch_url, outcome.payload)
    destination = root / asset["localPath"]
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(outcome.payload)
    except OSError as exc:
        logger.warning("Failed to write asset %s: %s", destination, exc)
        return DownloadResult(
            url=asset["url"],
            fetched_from=fetch_url,
            local_path=asset["localPath"],
            status="failed",
            attempts=outcome.attempts,
            http_status=outcome.http_status,
            bytes=0,
            error=str(exc),
        )
    return DownloadResult(
        url=asset["url"],
        fetched_from=fetch_url,
        local_path=asset["localPath"],
        status="downloaded",
        attempts=outcome.attempts,
        http_status=outcome.http_status,
        bytes=len(outcome.payload),
    )


def download_assets(
    assets: Sequence[Dict[str, Any]],
    root: Path,
    config: Optional[DownloadConfig] = None,
    session_factory: SessionFactory = requests.Session,
    sleep: Callable[[float], None] = time.sleep,
) -> List[DownloadResult]:
    """Download every manifest entry with a fixed pool of workers.

    Workers claim entries from a shared counter, so each entry is fetched
    by exactly one worker. Results are sorted by URL.
    """
    config = config or DownloadConfig()
    counter = itertools.count()
    lock = threading.Lock()
    results: List[DownloadResult] = []
    total = len(assets)

    def worker() -> None:
        with session_factory() as session:
            while True:
                with lock:
                    current = next(counter)
                if current >= total:
                    return
                result = _fetch_entry(session, assets[current], root, config, sleep)
                results.append(result)
                if result.ok:
                    logger.info("[%d/%d] downloaded %s", current + 1, total, result.url)
                else:
                    logger.warning(
                        "[%d/%d] failed %s (%s)", current + 1, total, result.url, result.error
                    )

    pool_size = max(1, config.concurrency)
    with ThreadPoolExecutor(max_workers=pool_size) as executor:
        futures = [executor.submit(worker) for _ in range(pool_size)]
        for future in futures:
            future.result()

    results.sort(key=lambda item: item.url)
    return results


def build_download_report(results: Sequence[DownloadResult]) -> Dict[str, Any]:
    downloaded = sum(1 for item in results if item.ok)
    return {
        "generatedAt": utc_timestamp(),
        "total": len(results),
        "downloaded": downloaded,
        "failed": len(results) - downloaded,
        "items": [item.to_dict() for item in results],
    }
