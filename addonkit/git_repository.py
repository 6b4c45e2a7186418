"""A manifest repository kept in a git remote and read from a local clone."""

from __future__ import annotations

import json
import logging
import os
import posixpath
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from addonkit.repository import Channel, Repository, allowed_channel_name, allowed_manifest_id

_log = logging.getLogger(__name__)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _default_repo_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "repo")


def _auth_env() -> Optional[dict[str, str]]:
    """Environment selecting the user's RSA key for SSH, or None when there is no key."""
    key_file = Path(f"{os.environ.get('HOME', '')}/.ssh/id_rsa")
    if not key_file.exists():
        return None
    key_file.read_bytes()
    env = dict(os.environ)
    env["GIT_SSH_COMMAND"] = f"ssh -i {shlex.quote(str(key_file))} -o IdentitiesOnly=yes"
    return env


def _git(args: list[str], cwd: Optional[str] = None, env: Optional[dict[str, str]] = None) -> None:
    result = subprocess.run(["git", *args], cwd=cwd, env=env, capture_output=True, text=True)
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise OSError(f"git {args[0]} failed: {detail}")


@dataclass
class GitRepository(Repository):
    """A repository cloned from a git URL, optionally rooted at a subdirectory."""

    base_url: str
    sub_dir: str = ""
    branch: str = ""
    repo_dir: str = field(default_factory=_default_repo_dir)

    def _refresh(self, env: Optional[dict[str, str]]) -> None:
        _git(["fetch", "--force", "origin"], cwd=self.repo_dir, env=env)
        _git(["checkout", "master"], cwd=self.repo_dir, env=env)
        _git(["reset", "--hard"], cwd=self.repo_dir, env=env)

    def _read(self, relative_path: str) -> bytes:
        _log.info("using git repository %s", self.base_url)
        env = _auth_env()
        if os.path.isdir(os.path.join(self.repo_dir, ".git")):
            self._refresh(env)
        else:
            _git(["clone", "--recurse-submodules", self.base_url, self.repo_dir], env=env)
        return Path(self.repo_dir, relative_path).read_bytes()

    def load_channel(self, name: str) -> Channel:
        if not allowed_channel_name(name):
            raise ValueError(f"invalid channel name: {_quote(name)}")

        _log.info("loading channel from %s", self.base_url)
        if self.sub_dir:
            name = self.sub_dir + "/" + name
        try:
            data = self._read(name)
        except OSError as exc:
            _log.error("error reading channel %s: %s", name, exc)
            raise

        try:
            return Channel.from_yaml(data)
        except ValueError as exc:
            text = data.decode("utf-8", errors="replace")
            raise ValueError(f"error parsing channel bytes {text}: {exc}") from exc

    def load_manifest(self, package_name: str, manifest_id: str) -> dict[str, str]:
        if not allowed_manifest_id(package_name):
            raise ValueError(f"invalid package name: {_quote(package_name)}")
        if not allowed_manifest_id(manifest_id):
            raise ValueError(f"invalid manifest id: {_quote(manifest_id)}")

        _log.info("loading package %s", package_name)
        parts = ["packages", package_name, manifest_id, "manifest.yaml"]
        if self.sub_dir:
            parts.insert(0, self.sub_dir)
        file_path = posixpath.normpath(posixpath.join(*parts))
        try:
            data = self._read(file_path)
        except OSError as exc:
            raise OSError(f"error reading package {file_path}: {exc}") from exc
        return {file_path: data.decode("utf-8", errors="replace")}


def parse_git_url(url: str) -> GitRepository:
    """Split a git URL into base URL and subdirectory, dropping any 'git::' prefix."""
    sub_dir = ""
    if url.startswith("git::"):
        url = url[len("git::"):]
    if ".git//" in url:
        base, sub_dir = url.split(".git//", 1)
        url = base + ".git"
    return GitRepository(base_url=url, sub_dir=sub_dir)