"""
Link cloaking: serve the destination's content under the short URL.

The destination is fetched server-side and relayed with its status, body and
headers, minus the headers that would stop it rendering in place
(Content-Security-Policy, X-Frame-Options). Sites with other framing defenses
may still break.

Any fetch error or non-2xx status degrades to a plain redirect. The fetch is
bounded by a timeout so a slow destination stalls only its own request for
at most that long.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import requests

log = logging.getLogger(__name__)

STRIPPED_HEADERS = frozenset({"content-security-policy", "x-frame-options"})
# requests hands back a decoded body, so these no longer describe it.
_TRANSFER_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding", "connection"})


@dataclass(frozen=True)
class CloakedResponse:
    status: int
    body: bytes
    # One pair per header line; Set-Cookie may repeat.
    headers: List[Tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class RedirectFallback:
    target_url: str
    reason: str = ""


class CloakingProxy:
    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def serve_cloaked(self, target_url: str) -> Union[CloakedResponse, RedirectFallback]:
        try:
            resp = self.session.get(target_url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as exc:
            log.error("Cloaking fetch failed for %s: %s", target_url, exc)
            return RedirectFallback(target_url, reason=str(exc))

        if not 200 <= resp.status_code < 300:
            log.error("Cloaking failed: target %s returned %s", target_url, resp.status_code)
            return RedirectFallback(target_url, reason=f"status {resp.status_code}")

        headers = [
            (name, value)
            for name, value in resp.raw.headers.iteritems()
            if name.lower() not in STRIPPED_HEADERS and name.lower() not in _TRANSFER_HEADERS
        ]
        return CloakedResponse(status=resp.status_code, body=resp.content, headers=headers)
