"""Best-effort HTTP check of the deployed site from the operator's machine."""

from __future__ import annotations

from dataclasses import dataclass

import requests

CHECK_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class HttpCheckResult:
    url: str
    status_code: int | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code is not None and self.status_code < 500


def build_public_url(server_ip: str) -> str:
    return f"http://{server_ip}"


def check_url(url: str, *, timeout: int = CHECK_TIMEOUT_SECONDS) -> HttpCheckResult:
    """HEAD `url`; network errors are reported in the result, never raised."""
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        return HttpCheckResult(url=url, error=str(exc))
    return HttpCheckResult(url=url, status_code=int(response.status_code))
