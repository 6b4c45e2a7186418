"""Channels, versions and the filesystem-backed manifest repository."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import semver
import yaml

_log = logging.getLogger(__name__)

_CHANNEL_SAFELIST = frozenset("abcdefghijklmnopqrstuvwxyz")
_VERSION_SAFELIST = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-.")


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _matches_safelist(text: str, safelist: frozenset) -> bool:
    return all(char in safelist for char in text)


def allowed_channel_name(name: str) -> bool:
    """Whether a channel name is safe to use as a path or URL component."""
    return _matches_safelist(name, _CHANNEL_SAFELIST) and not name.startswith(".")


def allowed_manifest_id(name: str) -> bool:
    """Whether a package name or manifest id is safe to use as a path component."""
    return _matches_safelist(name, _VERSION_SAFELIST) and not name.startswith(".")


def _parse_tolerant(text: str) -> Optional[semver.Version]:
    """Parse a version leniently: a leading 'v', missing parts and leading zeros are allowed."""
    stripped = text.strip()
    if stripped.startswith("v"):
        stripped = stripped[1:]
    parts = []
    for part in stripped.split(".", 2):
        if len(part) > 1:
            part = part.lstrip("0")
            if not part or part[0] not in "0123456789":
                part = "0" + part
        parts.append(part)
    if len(parts) < 3:
        if any(char in parts[-1] for char in "+-"):
            return None
        parts.extend(["0"] * (3 - len(parts)))
    try:
        return semver.Version.parse(".".join(parts))
    except (ValueError, TypeError):
        return None


@dataclass
class Version:
    """A package version listed in a channel."""

    package: str = ""
    version: str = ""

    def compare(self, other: "Version") -> int:
        """Return >0 if self is preferred over other, 0 if equal, <0 otherwise.

        A named package beats an unnamed one; a valid version beats an invalid one.
        """
        if self.package != other.package:
            if not self.package:
                return -1
            if not other.package:
                return 1

        left = _parse_tolerant(self.version)
        right = _parse_tolerant(other.version)
        if left is None:
            _log.info("invalid semver in version: %s", self)
            if right is None:
                _log.info("invalid semver in version: %s", other)
                return 0
            return -1
        if right is None:
            _log.info("invalid semver in version: %s", other)
            return 1
        return left.compare(right)


def _string_entry(entry: dict, key: str) -> str:
    value = entry.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, not {type(value).__name__}")
    return value


@dataclass
class Channel:
    """A named list of package versions."""

    manifests: list[Version] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, text: Union[str, bytes]) -> "Channel":
        """Parse a channel document; raises ValueError when it is malformed."""
        try:
            data: Any = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(str(exc)) from exc
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"channel must be a mapping, not {type(data).__name__}")
        entries = data.get("manifests")
        if entries is None:
            return cls()
        if not isinstance(entries, list):
            raise ValueError("field 'manifests' must be a list")
        manifests = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValueError("each manifest must be a mapping")
            manifests.append(
                Version(package=_string_entry(entry, "name"), version=_string_entry(entry, "version"))
            )
        return cls(manifests=manifests)

    def latest(self, package_name: str) -> Optional[Version]:
        """Return the best version for a package, or None when there is none."""
        best: Optional[Version] = None
        for candidate in self.manifests:
            if candidate.package and candidate.package != package_name:
                continue
            if best is None or best.compare(candidate) < 0:
                best = candidate
        return best


class Repository(ABC):
    """A source of channels and package manifests."""

    @abstractmethod
    def load_channel(self, name: str) -> Channel:
        """Load the named channel."""

    @abstractmethod
    def load_manifest(self, package_name: str, manifest_id: str) -> dict[str, str]:
        """Load the manifest files of a package version, keyed by their location."""


class FSRepository(Repository):
    """A repository stored in a local directory."""

    def __init__(self, basedir: Union[str, os.PathLike]) -> None:
        self.basedir = os.fspath(basedir)

    def load_channel(self, name: str) -> Channel:
        if not allowed_channel_name(name):
            raise ValueError(f"invalid channel name: {_quote(name)}")

        _log.info("loading channel %s from %s", name, self.basedir)
        path = os.path.normpath(os.path.join(self.basedir, name))
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            _log.error("error reading channel %s: %s", path, exc)
            raise OSError(f"error reading channel {path}: {exc}") from exc

        try:
            return Channel.from_yaml(data)
        except ValueError as exc:
            raise ValueError(f"error parsing channel {path}: {exc}") from exc

    def load_manifest(self, package_name: str, manifest_id: str) -> dict[str, str]:
        if not allowed_manifest_id(package_name):
            raise ValueError(f"invalid package name: {_quote(package_name)}")
        if not allowed_manifest_id(manifest_id):
            raise ValueError(f"invalid manifest id: {_quote(manifest_id)}")

        _log.info("loading package %s", package_name)
        dir_path = os.path.normpath(os.path.join(self.basedir, "packages", package_name, manifest_id))
        try:
            entries = sorted(os.scandir(dir_path), key=lambda entry: entry.name)
        except OSError as exc:
            raise OSError(f"error reading directory {dir_path}: {exc}") from exc

        result: dict[str, str] = {}
        for entry in entries:
            if entry.is_dir():
                _log.debug("skipping directory %s", entry.name)
                continue
            file_path = os.path.join(dir_path, entry.name)
            try:
                result[file_path] = Path(file_path).read_bytes().decode("utf-8", errors="replace")
            except OSError as exc:
                raise OSError(f"error reading file {file_path}: {exc}") from exc
        return result