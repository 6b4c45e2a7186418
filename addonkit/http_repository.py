"""A manifest repository served over HTTP or HTTPS."""

from __future__ import annotations

import json
import logging
from typing import Optional

import requests

from addonkit.repository import Channel, Repository, allowed_channel_name, allowed_manifest_id

_log = logging.getLogger(__name__)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class HTTPRepository(Repository):
    """A repository whose channels and packages live under a base URL."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = 60.0,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    def make_url(self, *paths: str) -> str:
        """Join path components onto the base URL with single slashes."""
        url = self.base_url
        for path in paths:
            if not url.endswith("/"):
                url += "/"
            url += path
        return url

    def _read_url(self, url: str) -> bytes:
        _log.info("doing HTTP request to %s", url)
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise OSError(f"error fetching {_quote(url)}: {exc}") from exc

        body = response.content
        if response.status_code == 200:
            return body
        status = f"{response.status_code} {response.reason or ''}".strip()
        text = body.decode("utf-8", errors="replace")
        raise OSError(f"unexpected response code {_quote(status)} fetching {_quote(url)}: {text}")

    def load_channel(self, name: str) -> Channel:
        if not allowed_channel_name(name):
            raise ValueError(f"invalid channel name: {_quote(name)}")

        _log.info("loading channel %s from %s", name, self.base_url)
        url = self.make_url(name)
        try:
            data = self._read_url(url)
        except OSError as exc:
            _log.error("error reading channel %s: %s", url, exc)
            raise OSError(f"error reading channel {url}: {exc}") from exc

        try:
            return Channel.from_yaml(data)
        except ValueError as exc:
            raise ValueError(f"error parsing channel {url}: {exc}") from exc

    def load_manifest(self, package_name: str, manifest_id: str) -> dict[str, str]:
        if not allowed_manifest_id(package_name):
            raise ValueError(f"invalid package name: {_quote(package_name)}")
        if not allowed_manifest_id(manifest_id):
            raise ValueError(f"invalid manifest id: {_quote(manifest_id)}")

        _log.info("loading package %s", package_name)
        url = self.make_url("packages", package_name, manifest_id, "manifest.yaml")
        try:
            data = self._read_url(url)
        except OSError as exc:
            raise OSError(f"error reading package {url}: {exc}") from exc
        return {url: data.decode("utf-8", errors="replace")}