"""Tools for managing cluster addons: common addon types, patches, manifest repositories, status reporting and a smoke test."""

__version__ = "0.1.0"

__all__ = [
    "api",
    "patches",
    "repository",
    "http_repository",
    "git_repository",
    "manifest_loader",
    "status",
    "smoketest",
]