"""Common spec and status types shared by addon objects, and accessors for them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union


def _as_mapping(data: Any, what: str) -> Mapping:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be a mapping, not {type(data).__name__}")
    return data


def _string_field(data: Mapping, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"field {key!r} must be a string, not {type(value).__name__}")
    return value


@dataclass
class CommonSpec:
    """Configuration attributes exposed on every addon."""

    version: str = ""
    channel: str = ""

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "CommonSpec":
        data = _as_mapping(data, "spec")
        return cls(version=_string_field(data, "version"), channel=_string_field(data, "channel"))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.version:
            result["version"] = self.version
        if self.channel:
            result["channel"] = self.channel
        return result


@dataclass
class CommonStatus:
    """Status attributes exposed on every addon."""

    healthy: bool = False
    errors: list[str] = field(default_factory=list)
    phase: str = ""

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "CommonStatus":
        data = _as_mapping(data, "status")
        healthy = data.get("healthy")
        if healthy is None:
            healthy = False
        elif not isinstance(healthy, bool):
            raise TypeError(f"field 'healthy' must be a bool, not {type(healthy).__name__}")
        errors = data.get("errors")
        if errors is None:
            errors = []
        elif not isinstance(errors, list) or not all(isinstance(e, str) for e in errors):
            raise TypeError("field 'errors' must be a list of strings")
        return cls(healthy=healthy, errors=list(errors), phase=_string_field(data, "phase"))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"healthy": self.healthy}
        if self.errors:
            result["errors"] = list(self.errors)
        if self.phase:
            result["phase"] = self.phase
        return result


RawPatch = Union[str, bytes, Mapping]


@dataclass
class PatchSpec:
    """A raw set of patches, each JSON or YAML text or an already decoded mapping."""

    patches: list[RawPatch] = field(default_factory=list)


class CommonObject(ABC):
    """Base for typed addon objects that expose a common spec and status."""

    name: str = ""
    namespace: str = ""

    @property
    @abstractmethod
    def component_name(self) -> str:
        """Name of the component the addon deploys."""

    @property
    @abstractmethod
    def common_spec(self) -> CommonSpec:
        """The addon's common spec."""

    @property
    @abstractmethod
    def common_status(self) -> CommonStatus:
        """The addon's common status."""

    @common_status.setter
    @abstractmethod
    def common_status(self, status: CommonStatus) -> None:
        """Replace the addon's common status."""


@dataclass
class Unstructured:
    """A Kubernetes object held as a plain nested dictionary."""

    data: dict[str, Any] = field(default_factory=dict)

    def get_nested(self, *fields: str) -> Any:
        """Return the value at the given path, or None when a key is missing.

        Raises TypeError when an intermediate value is not a mapping.
        """
        current: Any = self.data
        for depth, key in enumerate(fields):
            if not isinstance(current, dict):
                path = ".".join(fields[:depth])
                raise TypeError(f"{path} is of the type {type(current).__name__}, expected a mapping")
            if key not in current:
                return None
            current = current[key]
        return current

    def set_nested(self, value: Any, *fields: str) -> None:
        """Set the value at the given path, creating intermediate mappings."""
        if not fields:
            raise ValueError("at least one field is required")
        current = self.data
        for depth, key in enumerate(fields[:-1]):
            child = current.get(key)
            if child is None:
                child = current[key] = {}
            elif not isinstance(child, dict):
                path = ".".join(fields[: depth + 1])
                raise TypeError(f"value cannot be set because {path} is not a mapping")
            current = child
        current[fields[-1]] = value

    def _string_at(self, *fields: str) -> str:
        try:
            value = self.get_nested(*fields)
        except TypeError:
            return ""
        return value if isinstance(value, str) else ""

    @property
    def kind(self) -> str:
        return self._string_at("kind")

    @property
    def api_version(self) -> str:
        return self._string_at("apiVersion")

    @property
    def name(self) -> str:
        return self._string_at("metadata", "name")

    @property
    def namespace(self) -> str:
        return self._string_at("metadata", "namespace")

    @property
    def annotations(self) -> dict[str, str]:
        try:
            value = self.get_nested("metadata", "annotations")
        except TypeError:
            return {}
        if not isinstance(value, dict):
            return {}
        return {k: v for k, v in value.items() if isinstance(v, str)}


def _unsupported(instance: Any) -> TypeError:
    return TypeError(f"instance {type(instance).__name__} is not CommonObject or unstructured")


def get_common_status(instance: Any) -> CommonStatus:
    """Read the common status of a typed or unstructured addon object."""
    if isinstance(instance, CommonObject):
        return instance.common_status
    if isinstance(instance, Unstructured):
        raw = instance.get_nested("status")
        if raw is not None and not isinstance(raw, dict):
            raise TypeError(f"unable to get status from unstructured: status is {type(raw).__name__}")
        return CommonStatus.from_dict(raw)
    raise _unsupported(instance)


def set_common_status(instance: Any, status: CommonStatus) -> None:
    """Write the common status of a typed or unstructured addon object."""
    if isinstance(instance, CommonObject):
        instance.common_status = status
    elif isinstance(instance, Unstructured):
        instance.set_nested(status.to_dict(), "status")
    else:
        raise _unsupported(instance)


def get_common_spec(instance: Any) -> CommonSpec:
    """Read the common spec of a typed or unstructured addon object."""
    if isinstance(instance, CommonObject):
        return instance.common_spec
    if isinstance(instance, Unstructured):
        raw = instance.get_nested("spec")
        if raw is not None and not isinstance(raw, dict):
            raise TypeError(f"unable to get spec from unstructured: spec is {type(raw).__name__}")
        return CommonSpec.from_dict(raw)
    raise _unsupported(instance)


def get_common_name(instance: Any) -> str:
    """Return the component name: declared by typed objects, the lower-cased kind otherwise."""
    if isinstance(instance, CommonObject):
        return instance.component_name
    if isinstance(instance, Unstructured):
        return instance.kind.lower()
    raise _unsupported(instance)