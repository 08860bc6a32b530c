"""Unit tests for parallel batch downloads."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest
from pydantic import ValidationError

from certscope.batch import BatchOutcome, download_many, load_targets
from certscope.exceptions import HostDoesNotExist, InvalidHostInput, UnknownError
from certscope.fetcher import DownloadResult
from certscope.models.certificate import SslCertificate


class _StubDownloader:
    """Answers from a table instead of the network."""

    def __init__(self, answers: dict) -> None:
        self.answers = answers
        self.threads: set[str] = set()
        self._lock = threading.Lock()

    def download(self, url: str) -> DownloadResult:
        with self._lock:
            self.threads.add(threading.current_thread().name)
        answer = self.answers[url]
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture()
def download_result(raw_fields) -> DownloadResult:
    return DownloadResult(
        hostname="example.com",
        port=443,
        remote_address="93.184.216.34:443",
        certificates=(SslCertificate.from_raw_fields(raw_fields),),
    )


class TestLoadTargets:
    def test_skips_comments_and_blanks(self, tmp_path: Path) -> None:
        hosts = tmp_path / "hosts.txt"
        hosts.write_text("# production\nexample.com\n\n  https://www.example.org/  \nexample.net:8443 # staging\n")

        assert load_targets(hosts) == ["example.com", "https://www.example.org/", "example.net:8443"]

    def test_empty_file(self, tmp_path: Path) -> None:
        hosts = tmp_path / "hosts.txt"
        hosts.write_text("")
        assert load_targets(hosts) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_targets(tmp_path / "absent.txt")


class TestDownloadMany:
    def test_outcomes_keep_input_order(self, download_result) -> None:
        downloader = _StubDownloader(
            {
                "a.example.com": download_result,
                "missing.example.com": HostDoesNotExist("missing.example.com"),
                "b.example.com": download_result,
            }
        )

        outcomes = download_many(["a.example.com", "missing.example.com", "b.example.com"], downloader, max_workers=3)

        assert [outcome.target for outcome in outcomes] == ["a.example.com", "missing.example.com", "b.example.com"]
        assert [outcome.success for outcome in outcomes] == [True, False, True]

    def test_failure_is_captured(self) -> None:
        downloader = _StubDownloader({"slow.example.com": UnknownError("slow.example.com", "TLS handshake timed out")})

        (outcome,) = download_many(["slow.example.com"], downloader)

        assert outcome.result is None
        assert outcome.error_kind == "UnknownError"
        assert "timed out" in outcome.error

    def test_invalid_input_is_captured(self) -> None:
        downloader = _StubDownloader({"": InvalidHostInput("", "empty input")})

        (outcome,) = download_many([""], downloader)

        assert outcome.error_kind == "InvalidHostInput"

    def test_unexpected_errors_propagate(self) -> None:
        downloader = _StubDownloader({"example.com": RuntimeError("boom")})

        with pytest.raises(RuntimeError):
            download_many(["example.com"], downloader)

    def test_success_exposes_leaf(self, download_result) -> None:
        (outcome,) = download_many(["example.com"], _StubDownloader({"example.com": download_result}))

        assert outcome.result.leaf.domain() == "example.com"
        assert outcome.error == ""

    def test_empty_targets(self) -> None:
        assert download_many([], _StubDownloader({})) == []

    def test_single_worker(self, download_result) -> None:
        downloader = _StubDownloader({f"h{i}.example.com": download_result for i in range(5)})

        outcomes = download_many(list(downloader.answers), downloader, max_workers=1)

        assert len(outcomes) == 5
        assert len(downloader.threads) == 1

    def test_workers_default_from_settings(self, monkeypatch, download_result) -> None:
        monkeypatch.setenv("CERTSCOPE_BATCH__MAX_WORKERS", "1")
        downloader = _StubDownloader({"a.example.com": download_result, "b.example.com": download_result})

        download_many(["a.example.com", "b.example.com"], downloader)

        assert len(downloader.threads) == 1


def test_outcome_is_frozen() -> None:
    outcome = BatchOutcome(target="example.com", error_kind="UnknownError", error="boom")
    with pytest.raises(ValidationError):
        outcome.target = "other.com"
