"""Resolution of an addon object to the manifests of the version it asks for."""

from __future__ import annotations

import json
import logging
from typing import Any

from addonkit.api import get_common_name, get_common_spec
from addonkit.git_repository import GitRepository
from addonkit.http_repository import HTTPRepository
from addonkit.repository import FSRepository, Repository

_log = logging.getLogger(__name__)

FLAG_CHANNEL = "./channels"
"""Default location of the channel repository."""


class ManifestLoader:
    """Loads the manifests for an addon object from a repository."""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def resolve_manifest(self, obj: Any) -> dict[str, str]:
        """Return the manifest files of the version the object specifies or its channel's latest."""
        spec = get_common_spec(obj)
        version = spec.version
        channel_name = spec.channel
        component_name = get_common_name(obj)

        manifest_id = version
        if not manifest_id:
            if not channel_name:
                channel_name = "stable"
            channel = self.repo.load_channel(channel_name)
            latest = channel.latest(component_name)
            if latest is None:
                raise ValueError(
                    f"could not find latest version in channel {json.dumps(channel_name, ensure_ascii=False)}"
                )
            manifest_id = latest.version
            _log.info("resolved version %s from channel %s", manifest_id, channel_name)
        else:
            _log.info("using specified version %s", version)

        try:
            return self.repo.load_manifest(component_name, manifest_id)
        except OSError as exc:
            raise OSError(f"error loading manifest: {exc}") from exc
        except ValueError as exc:
            raise ValueError(f"error loading manifest: {exc}") from exc


def new_manifest_loader(channel: str) -> ManifestLoader:
    """Pick an HTTP, git or filesystem repository from the form of the channel location."""
    if channel.startswith("http://") or channel.startswith("https://"):
        return ManifestLoader(HTTPRepository(channel))
    if "git//" in channel or ".git" in channel:
        from addonkit.git_repository import parse_git_url

        return ManifestLoader(parse_git_url(channel))
    return ManifestLoader(FSRepository(channel))


__all__ = ["FLAG_CHANNEL", "ManifestLoader", "new_manifest_loader", "GitRepository"]