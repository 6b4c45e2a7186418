"""Status reporting for addon objects: health aggregation, kstatus phases and version checks."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Optional, Protocol

import semver

from addonkit.api import Unstructured, get_common_status, set_common_status

_log = logging.getLogger(__name__)

SUCCESSFUL_DEPLOYMENT = "Available"
MIN_OPERATOR_VERSION_ANNOTATION = "addons.k8s.io/min-operator-version"


class Client(Protocol):
    """The cluster operations the status implementations need."""

    def get(self, group: str, kind: str, namespace: str, name: str) -> Any:
        """Return the object, as a mapping or Unstructured; raise when it cannot be read."""

    def update_status(self, obj: Any) -> None:
        """Write the status of an addon object back to the cluster."""


class KStatus(str, enum.Enum):
    """Computed status of a deployed resource."""

    IN_PROGRESS = "InProgress"
    FAILED = "Failed"
    CURRENT = "Current"
    TERMINATING = "Terminating"
    NOT_FOUND = "NotFound"
    UNKNOWN = "Unknown"


def _group_of(obj: Unstructured) -> str:
    api_version = obj.api_version
    return api_version.rsplit("/", 1)[0] if "/" in api_version else ""


def _object_key(obj: Unstructured, src: Any) -> tuple[str, str]:
    namespace = obj.namespace or getattr(src, "namespace", "") or ""
    return namespace, obj.name


def _as_data(value: Any) -> Mapping:
    if isinstance(value, Unstructured):
        return value.data
    if isinstance(value, Mapping):
        return value
    return {}


def aggregate_status(statuses: Iterable[KStatus]) -> KStatus:
    """Combine resource statuses: in progress beats failed, which beats current."""
    seen = set(statuses)
    if KStatus.IN_PROGRESS in seen or KStatus.TERMINATING in seen:
        return KStatus.IN_PROGRESS
    if KStatus.FAILED in seen:
        return KStatus.FAILED
    return KStatus.CURRENT


class Aggregator:
    """Sets the 'healthy' and 'errors' status fields from the deployed objects."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _deployment(self, group: str, namespace: str, name: str) -> bool:
        key = f"{namespace}/{name}"
        try:
            dep = _as_data(self.client.get(group, "Deployment", namespace, name))
        except Exception as exc:
            raise RuntimeError(f"error reading deployment ({key}): {exc}") from exc
        conditions = (dep.get("status") or {}).get("conditions") or []
        for cond in conditions:
            if cond.get("type") == SUCCESSFUL_DEPLOYMENT and cond.get("status") == "True":
                return True
        raise RuntimeError(f"deployment ({key}) does not meet condition: {SUCCESSFUL_DEPLOYMENT}")

    def _service(self, namespace: str, name: str) -> bool:
        try:
            self.client.get("", "Service", namespace, name)
        except Exception as exc:
            raise RuntimeError(f"error reading service ({namespace}/{name}): {exc}") from exc
        return True

    def reconciled(self, src: Any, objects: Iterable[Unstructured]) -> None:
        """Recompute the health of src and update it in the cluster when it changed."""
        status_healthy = True
        status_errors: list[str] = []

        for obj in objects:
            group = _group_of(obj)
            gk = f"{group}/{obj.kind}"
            namespace, name = _object_key(obj, src)
            healthy = True
            try:
                if gk == "/Service":
                    healthy = self._service(namespace, name)
                elif gk in ("extensions/Deployment", "apps/Deployment"):
                    healthy = self._deployment(group, namespace, name)
                else:
                    _log.debug("type %s not implemented for status aggregation, skipping", gk)
            except RuntimeError as exc:
                healthy = False
                status_errors.append(str(exc))
            status_healthy = status_healthy and healthy

        current = get_common_status(src)
        status = replace(current, healthy=status_healthy, errors=status_errors)
        if status != current:
            set_common_status(src, status)
            _log.info("updating status of %s: %s", getattr(src, "name", ""), status)
            self.client.update_status(src)


class KstatusAggregator:
    """Sets the 'phase' status field from the computed status of each deployed object."""

    def __init__(self, client: Client, compute: Callable[[Any], Any]) -> None:
        self.client = client
        self.compute = compute

    def reconciled(self, src: Any, objects: Iterable[Unstructured]) -> None:
        """Recompute the phase of src and update it in the cluster when it changed."""
        seen: set[KStatus] = set()
        for obj in objects:
            namespace, name = _object_key(obj, src)
            try:
                live = self.client.get(_group_of(obj), obj.kind, namespace, name)
            except Exception:
                _log.error("unable to get status of object %s/%s", obj.kind, name)
                raise
            try:
                result = KStatus(self.compute(live))
            except Exception as exc:
                _log.info("status of %s/%s could not be computed: %s", obj.kind, name, exc)
                seen.add(KStatus.NOT_FOUND)
                continue
            _log.info("got status of %s/%s: %s", obj.kind, name, result.value)
            seen.add(result)

        phase = aggregate_status(seen).value
        current = get_common_status(src)
        if current.phase != phase:
            set_common_status(src, replace(current, phase=phase))
            _log.info("updating phase of %s to %s", getattr(src, "name", ""), phase)
            try:
                self.client.update_status(src)
            except Exception as exc:
                raise RuntimeError(f"error updating status: {exc}") from exc


class VersionCheck:
    """Checks that the operator is at least the version the manifest asks for."""

    def __init__(self, client: Client, operator_version: str) -> None:
        try:
            self.operator_version = semver.Version.parse(operator_version)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"unable to parse operator version {operator_version!r}: {exc}") from exc
        self.client = client

    def version_check(self, src: Any, objects: Iterable[Unstructured]) -> bool:
        """Return True when qualified; otherwise record the failure on src and raise RuntimeError."""
        minimum = semver.Version(0, 0, 0)
        for obj in objects:
            needed_text = obj.annotations.get(MIN_OPERATOR_VERSION_ANNOTATION)
            if needed_text is None:
                continue
            _log.info("got version requirement %s", needed_text)
            try:
                needed = semver.Version.parse(needed_text)
            except ValueError:
                _log.error("unable to parse version restriction %s", needed_text)
                raise
            if needed > minimum:
                minimum = needed

        if self.operator_version >= minimum:
            return True

        errors = [
            f"manifest needs operator version >= {minimum}, this operator is version {self.operator_version}"
        ]
        current = get_common_status(src)
        status = replace(current, healthy=False, errors=errors)
        if status != current:
            try:
                set_common_status(src, status)
            except (TypeError, ValueError) as exc:
                _log.error("unable to update status: %s", exc)

        raise RuntimeError(f"operator not qualified, manifest needs operator version >= {minimum}")


@dataclass
class StatusBuilder:
    """Combines optional status implementations into one status handler."""

    reconciled_impl: Optional[Any] = None
    version_check_impl: Optional[VersionCheck] = None

    def reconciled(self, src: Any, objects: Iterable[Unstructured]) -> None:
        if self.reconciled_impl is not None:
            self.reconciled_impl.reconciled(src, objects)

    def version_check(self, src: Any, objects: Iterable[Unstructured]) -> bool:
        if self.version_check_impl is None:
            return True
        return self.version_check_impl.version_check(src, objects)


def new_basic(client: Client) -> StatusBuilder:
    """A status handler that aggregates health, with no preflight checks."""
    return StatusBuilder(reconciled_impl=Aggregator(client))


def new_basic_version_checks(client: Client, version: str) -> StatusBuilder:
    """A status handler that aggregates health and checks the operator version."""
    return StatusBuilder(reconciled_impl=Aggregator(client), version_check_impl=VersionCheck(client, version))


def new_kstatus_check(client: Client, compute: Callable[[Any], Any]) -> StatusBuilder:
    """A status handler that sets the phase from computed resource statuses."""
    return StatusBuilder(reconciled_impl=KstatusAggregator(client, compute))