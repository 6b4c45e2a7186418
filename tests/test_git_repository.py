import subprocess
from unittest import mock

import pytest

from addonkit.git_repository import GitRepository, parse_git_url
from addonkit.repository import Version


@pytest.mark.parametrize(
    "raw_url, base_url, sub_dir",
    [
        ("https://github.com/testRepository.git", "https://github.com/testRepository.git", ""),
        ("git::https://github.com/testRepository.git", "https://github.com/testRepository.git", ""),
        (
            "git::https://github.com/testRepository.git//subDir/package",
            "https://github.com/testRepository.git",
            "subDir/package",
        ),
    ],
)
def test_parse_git_url(raw_url, base_url, sub_dir):
    repo = parse_git_url(raw_url)
    assert repo.base_url == base_url
    assert repo.sub_dir == sub_dir


def _ok(args, **kwargs):
    return subprocess.CompletedProcess(args, 0, "", "")


@pytest.fixture
def no_ssh_key(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


def test_load_channel_clones_and_reads(tmp_path, no_ssh_key):
    repo_dir = tmp_path / "repo"
    (repo_dir / "channels").mkdir(parents=True)
    (repo_dir / "channels" / "stable").write_text("manifests:\n- name: nginx\n  version: 0.1.0\n")
    repo = GitRepository(base_url="https://example.com/addons.git", sub_dir="channels", repo_dir=str(repo_dir))

    with mock.patch("subprocess.run", side_effect=_ok) as run:
        channel = repo.load_channel("stable")

    assert channel.manifests == [Version("nginx", "0.1.0")]
    assert run.call_args_list[0].args[0] == [
        "git",
        "clone",
        "--recurse-submodules",
        "https://example.com/addons.git",
        str(repo_dir),
    ]


def test_existing_clone_is_refreshed(tmp_path, no_ssh_key):
    repo_dir = tmp_path / "repo"
    (repo_dir / ".git").mkdir(parents=True)
    package_dir = repo_dir / "packages" / "nginx" / "1.2.3"
    package_dir.mkdir(parents=True)
    (package_dir / "manifest.yaml").write_text("kind: Service\n")
    repo = GitRepository(base_url="https://example.com/addons.git", repo_dir=str(repo_dir))

    with mock.patch("subprocess.run", side_effect=_ok) as run:
        result = repo.load_manifest("nginx", "1.2.3")

    assert result == {"packages/nginx/1.2.3/manifest.yaml": "kind: Service\n"}
    commands = [c.args[0] for c in run.call_args_list]
    assert commands == [
        ["git", "fetch", "--force", "origin"],
        ["git", "checkout", "master"],
        ["git", "reset", "--hard"],
    ]
    assert all(c.kwargs["cwd"] == str(repo_dir) for c in run.call_args_list)


def test_load_manifest_with_sub_dir_key(tmp_path, no_ssh_key):
    repo_dir = tmp_path / "repo"
    package_dir = repo_dir / "sub" / "packages" / "nginx" / "1.0"
    package_dir.mkdir(parents=True)
    (package_dir / "manifest.yaml").write_text("x")
    repo = parse_git_url("git::https://example.com/addons.git//sub")
    repo.repo_dir = str(repo_dir)

    with mock.patch("subprocess.run", side_effect=_ok):
        result = repo.load_manifest("nginx", "1.0")

    assert result == {"sub/packages/nginx/1.0/manifest.yaml": "x"}


def test_clone_failure_raises(tmp_path, no_ssh_key):
    repo = GitRepository(base_url="https://example.com/missing.git", repo_dir=str(tmp_path / "repo"))

    def fail(args, **kwargs):
        return subprocess.CompletedProcess(args, 128, "", "fatal: repository not found")

    with mock.patch("subprocess.run", side_effect=fail):
        with pytest.raises(OSError) as info:
            repo.load_channel("stable")
    assert "repository not found" in str(info.value)


def test_missing_package_file_is_wrapped(tmp_path, no_ssh_key):
    repo = GitRepository(base_url="https://example.com/addons.git", repo_dir=str(tmp_path / "repo"))
    with mock.patch("subprocess.run", side_effect=_ok):
        with pytest.raises(OSError) as info:
            repo.load_manifest("nginx", "1.0")
    assert str(info.value).startswith("error reading package packages/nginx/1.0/manifest.yaml")


def test_invalid_names_rejected_before_git(tmp_path):
    repo = GitRepository(base_url="https://example.com/addons.git", repo_dir=str(tmp_path))
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        with pytest.raises(ValueError):
            repo.load_channel("Stable")
        with pytest.raises(ValueError):
            repo.load_manifest("nginx", ".1")
    assert run.call_count == 0