"""
Profile-wide cookie jar.

Every client of one profile directory shares the session cookie, the way
tabs of one browser profile do. The jar lives in <profile_dir>/cookies.json.
Before each request the session reloads it; afterwards only the cookies the
response actually set or deleted are merged back, so a request running in
another client can't roll back a newer cookie it never touched.
"""

from __future__ import annotations

import threading
from http.cookiejar import Cookie
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import requests
from requests.cookies import RequestsCookieJar, create_cookie

from ..core.locks import acquire_lock
from ..utils.fileio import atomic_write_json, read_json
from ..utils.logger import get_logger

logger = get_logger(__name__)

COOKIES_FILE_NAME = "cookies.json"

CookieKey = Tuple[str, str, str]


def _key(cookie: Cookie) -> CookieKey:
    return (cookie.domain, cookie.path, cookie.name)


def cookie_to_dict(cookie: Cookie) -> Dict[str, Any]:
    return {
        "name": cookie.name,
        "value": cookie.value,
        "domain": cookie.domain,
        "path": cookie.path,
        "secure": cookie.secure,
        "expires": cookie.expires,
        "discard": cookie.discard,
        "http_only": cookie.has_nonstandard_attr("HttpOnly"),
    }


def cookie_from_dict(data: Dict[str, Any]) -> Cookie:
    return create_cookie(
        data["name"],
        data["value"],
        domain=data.get("domain", ""),
        path=data.get("path", "/"),
        secure=data.get("secure", False),
        expires=data.get("expires"),
        discard=data.get("discard", False),
        rest={"HttpOnly": None} if data.get("http_only") else {},
    )


def _snapshot(jar: RequestsCookieJar) -> Dict[CookieKey, Dict[str, Any]]:
    return {_key(c): cookie_to_dict(c) for c in jar}


class ProfileSession(requests.Session):
    """requests.Session whose cookies are shared through the profile directory."""

    def __init__(self, profile_dir: Path):
        super().__init__()
        self.profile_dir = Path(profile_dir)
        self.path = self.profile_dir / COOKIES_FILE_NAME
        self.lock_dir = self.profile_dir / "locks"
        # One request at a time per client; the jar is reloaded per request
        self._request_lock = threading.RLock()

    def _stored(self) -> Dict[CookieKey, Dict[str, Any]]:
        raw = read_json(self.path, {"cookies": []})
        out: Dict[CookieKey, Dict[str, Any]] = {}
        for data in raw.get("cookies") or []:
            try:
                cookie = cookie_from_dict(data)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping unreadable cookie", error=str(e))
                continue
            if not cookie.is_expired():
                out[_key(cookie)] = cookie_to_dict(cookie)
        return out

    def load(self) -> None:
        """Replace the in-memory jar with the profile's cookies."""
        self.cookies.clear()
        for data in self._stored().values():
            self.cookies.set_cookie(cookie_from_dict(data))

    def _merge(self, before: Dict[CookieKey, Dict[str, Any]], after: Dict[CookieKey, Dict[str, Any]]) -> None:
        changed = {k: v for k, v in after.items() if before.get(k) != v}
        removed = [k for k in before if k not in after]
        if not changed and not removed:
            return
        with acquire_lock(self.lock_dir, "lock:cookies"):
            stored = self._stored()
            stored.update(changed)
            for k in removed:
                stored.pop(k, None)
            atomic_write_json(self.path, {"cookies": list(stored.values())})
        logger.debug("Profile cookies updated", changed=len(changed), removed=len(removed))

    def request(self, method: str, url: str, *args: Any, **kwargs: Any) -> requests.Response:
        with self._request_lock:
            self.load()
            before = _snapshot(self.cookies)
            try:
                return super().request(method, url, *args, **kwargs)
            finally:
                self._merge(before, _snapshot(self.cookies))

    def get_cookie(self, name: str) -> Optional[str]:
        """Current value of a cookie in the profile (any domain)."""
        for data in self._stored().values():
            if data["name"] == name:
                return data["value"]
        return None
