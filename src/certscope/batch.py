"""Download certificates for many hosts in parallel.

Each download is an independent blocking call, so hosts are spread over a
thread pool. Failures are captured per host rather than aborting the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from certscope.exceptions import CertScopeError
from certscope.fetcher import Downloader, DownloadResult

logger = logging.getLogger(__name__)


class BatchOutcome(BaseModel):
    """Result of one host in a batch: either a download or an error."""

    model_config = ConfigDict(frozen=True)

    target: str
    result: DownloadResult | None = None
    error_kind: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return self.result is not None


def load_targets(path: Path) -> list[str]:
    """Read hosts from a text file: one per line, ``#`` starts a comment.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Host list not found: {path}")

    targets = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            targets.append(line)
    return targets


def download_many(
    targets: Iterable[str],
    downloader: Downloader | None = None,
    max_workers: int | None = None,
) -> list[BatchOutcome]:
    """Download each target's chain, returning outcomes in input order."""
    targets = list(targets)
    if not targets:
        return []

    if max_workers is None:
        from certscope.settings import get_settings

        max_workers = get_settings().batch.max_workers

    downloader = downloader or Downloader()
    workers = max(1, min(max_workers, len(targets)))
    logger.info("Downloading %d certificate chain(s) with %d worker(s)", len(targets), workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="certscope-batch") as executor:
        return list(executor.map(lambda target: _download_one(downloader, target), targets))


def _download_one(downloader: Downloader, target: str) -> BatchOutcome:
    try:
        result = downloader.download(target)
    except CertScopeError as exc:
        logger.warning("Batch download for %s failed: %s", target, exc)
        return BatchOutcome(target=target, error_kind=type(exc).__name__, error=str(exc))
    return BatchOutcome(target=target, result=result)
