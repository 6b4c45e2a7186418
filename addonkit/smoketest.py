"""Smoke test that deploys example operators to a live cluster and checks that they work."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import stat
import subprocess
import sys
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Optional, Protocol

_log = logging.getLogger(__name__)

DEFAULT_SYSTEM_NAMESPACE = "guestbook-operator-system"
DEFAULT_IMAGE_REPO = "gcr.io/jrjohnson-gke"
DEFAULT_IMAGE_TAG = "latest"
GUESTBOOK_BASEDIR = "../examples/guestbook-operator"
GUESTBOOK_LABEL = "example-app=guestbook"

VERIFY_TIMEOUT = 120.0
VERIFY_FREQUENCY = 5.0

_IMAGE_PATTERN = re.compile(r"gcr.io/jrjohnson-gke/(.*):latest")


class VerificationError(Exception):
    """Raised when the cluster is not in the expected state."""


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def execute_command(cmd: str, *args: str) -> str:
    """Run a command, echo its output, and return it without the final newline."""
    cmd_str = " ".join((cmd, *args))
    _log.info("exec: %s", cmd_str)
    try:
        result = subprocess.run([cmd, *args], stdout=subprocess.PIPE, text=True)
    except OSError as exc:
        raise RuntimeError(f"error execing command {_quote(cmd_str)}: {exc}") from exc
    out = result.stdout or ""
    sys.stdout.write(out)
    if result.returncode != 0:
        raise RuntimeError(f"error execing command {_quote(cmd_str)}: exit status {result.returncode}")
    return out[:-1] if out.endswith("\n") else out


def rewrite_images(text: str, repo: str, tag: str) -> str:
    """Point hard-coded controller images at the given repository and tag."""
    if repo.endswith("/"):
        repo = repo[:-1]
    return _IMAGE_PATTERN.sub(lambda match: f"{repo}/{match.group(1)}:{tag}", text)


def _pod_name(pod: dict) -> str:
    name = (pod.get("metadata") or {}).get("name")
    return name if isinstance(name, str) else ""


def _pod_is_ready(pod: dict) -> bool:
    conditions = (pod.get("status") or {}).get("conditions") or []
    return any(cond.get("type") == "Ready" and cond.get("status") == "True" for cond in conditions)


class PodSet(list):
    """A list of pod objects as decoded from the cluster API."""

    def where(self, predicate: Callable[[dict], bool]) -> "PodSet":
        """Return the pods for which the predicate holds."""
        return PodSet(pod for pod in self if predicate(pod))

    def where_ready(self, ready: bool) -> "PodSet":
        """Return the pods whose readiness equals ``ready``."""
        return self.where(lambda pod: _pod_is_ready(pod) == ready)


class _Harness(Protocol):
    def list_pods(self, namespace: str) -> list[dict]: ...

    def kubectl_apply(self, path: str) -> None: ...

    def kubectl_delete(self, path: str) -> None: ...


def verify_ready_pods(harness: _Harness, namespace: str, *prefixes: str) -> None:
    """Check that pods with each name prefix exist and are all ready."""
    for prefix in prefixes:
        pods = PodSet(harness.list_pods(namespace)).where(lambda pod: _pod_name(pod).startswith(prefix))
        if not pods:
            raise VerificationError(f"no {prefix} pod found in {namespace}")
        ready = pods.where_ready(True)
        if len(ready) != len(pods):
            raise VerificationError(
                f"{len(ready)} pods ready with prefix {_quote(prefix)}, expected {len(pods)}"
            )


def _verify_no_workloads_with_label(label: str, namespace: str) -> None:
    out = execute_command("kubectl", "get", "all", "-l", label, "-n", namespace)
    if out:
        raise VerificationError(
            f"Unexpected resources for label {_quote(label)}. "
            f"Kubectl get returned {out.count(chr(10))} lines of output"
        )


def verify_or_timeout(
    tests: Iterable[Any],
    verify: Callable[[Any], None],
    desc: str,
    timeout: float = VERIFY_TIMEOUT,
    frequency: float = VERIFY_FREQUENCY,
) -> None:
    """Retry ``verify`` on every test until all pass; raise VerificationError on timeout."""
    tests = list(tests)
    _log.info("running verify tasks, retry period: %ss, timeout: %ss", frequency, timeout)
    deadline = time.monotonic() + timeout
    while True:
        errors = []
        for test in tests:
            try:
                verify(test)
            except VerificationError as exc:
                errors.append(f"{type(test).__name__}: {exc}")

        if not errors:
            _log.info("all tests pass")
            return
        for error in errors:
            _log.info("verify error: %s", error)

        remaining = deadline - time.monotonic()
        if remaining < frequency:
            time.sleep(max(remaining, 0.0))
            raise VerificationError(f"error: failed to verify cluster ({desc}) after {timeout:g}s")
        time.sleep(frequency)
        _log.info("[%d/%d] passing (%s)", len(tests) - len(errors), len(tests), desc)


def _verify_custom_scenarios(tests: Iterable[Any]) -> None:
    tests = list(tests)
    passing = len(tests)
    for test in tests:
        try:
            test.custom_scenarios()
        except VerificationError as exc:
            _log.info("verify error: %s", exc)
            passing -= 1
    _log.info("[%d/%d] passing", passing, len(tests))
    if passing < len(tests):
        raise VerificationError("error: failed to verify custom scenarios for operators")


class RealTestHarness:
    """Runs against the cluster that kubectl is configured for."""

    def __init__(self, image_repo: str = DEFAULT_IMAGE_REPO, image_tag: str = DEFAULT_IMAGE_TAG) -> None:
        self.image_repo = image_repo
        self.image_tag = image_tag

    def list_pods(self, namespace: str) -> list[dict]:
        """Return the pods in a namespace."""
        argv = ["kubectl", "get", "pods", "-n", namespace, "-o", "json"]
        try:
            result = subprocess.run(argv, stdout=subprocess.PIPE, text=True)
        except OSError as exc:
            raise RuntimeError(f"error listing pods: {exc}") from exc
        if result.returncode != 0:
            raise RuntimeError(f"error listing pods: exit status {result.returncode}")
        try:
            decoded = json.loads(result.stdout or "{}")
        except ValueError as exc:
            raise RuntimeError(f"error listing pods: {exc}") from exc
        return list(decoded.get("items") or [])

    def kubectl_apply(self, path: str) -> None:
        """Apply a file, or every visible file under a directory, with images rewritten."""
        try:
            mode = os.stat(path).st_mode
        except OSError as exc:
            raise RuntimeError(f"error doing stat on {path}: {exc}") from exc

        if not stat.S_ISDIR(mode):
            self._apply_file(path)
            return

        try:
            entries = sorted(os.scandir(path), key=lambda entry: entry.name)
        except OSError as exc:
            raise RuntimeError(f"error reading directory {path}: {exc}") from exc
        for entry in entries:
            if entry.name.endswith("~") or entry.name.startswith("."):
                continue
            child = os.path.join(path, entry.name)
            if entry.is_dir():
                self.kubectl_apply(child)
            else:
                self._apply_file(child)

    def kubectl_delete(self, path: str) -> None:
        """Delete everything described under a path."""
        execute_command("kubectl", "delete", "-f", path, "--recursive")

    def _apply_file(self, path: str) -> None:
        try:
            with open(path, encoding="utf-8") as handle:
                text = handle.read()
        except OSError as exc:
            raise RuntimeError(f"error reading file {path}: {exc}") from exc
        _log.info("applying file %s", path)
        self._apply_string(rewrite_images(text, self.image_repo, self.image_tag))

    def _apply_string(self, text: str) -> None:
        try:
            result = subprocess.run(
                ["kubectl", "apply", "-f", "-"], input=text, stdout=subprocess.PIPE, text=True
            )
        except OSError as exc:
            raise RuntimeError(f"error from kubectl apply: {exc}") from exc
        out = result.stdout or ""
        sys.stdout.write(out)
        if result.returncode != 0:
            raise RuntimeError(f"error from kubectl apply: {out}")


@dataclass
class CommonAddonTest:
    """Lifecycle steps shared by every operator under test, driven by its Makefile."""

    harness: _Harness
    base: str = ""

    @property
    def name(self) -> str:
        return self.base

    @property
    def basedir(self) -> str:
        return self.base

    @property
    def _samples(self) -> str:
        return os.path.join(self.basedir, "config", "samples")

    def install_crds(self) -> None:
        execute_command("make", "-C", self.basedir, "install")

    def install_operators(self) -> None:
        execute_command("make", "-C", self.basedir, "docker-build", "docker-push", "deploy")

    def delete_operators(self) -> None:
        execute_command("make", "-C", self.basedir, "teardown")

    def install_resources(self) -> None:
        self.harness.kubectl_apply(self._samples)

    def delete_resources(self) -> None:
        self.harness.kubectl_delete(self._samples)

    def verify_up(self) -> None:
        raise VerificationError(f"VerifyUp not implemented for operator: {self.name}")

    def verify_down(self) -> None:
        raise VerificationError(f"VerifyDown not implemented for operator: {self.name}")

    def custom_scenarios(self) -> None:
        """Operator-specific scenarios; none by default."""

    def disrupt(self) -> None:
        _log.info("Disrupt not configured for operator: %s", self.name)


@dataclass
class GuestbookTest(CommonAddonTest):
    """Smoke test for the guestbook example operator."""

    base: str = GUESTBOOK_BASEDIR

    def verify_up(self) -> None:
        verify_ready_pods(self.harness, DEFAULT_SYSTEM_NAMESPACE, "guestbook-operator")

    def verify_down(self) -> None:
        _verify_no_workloads_with_label(GUESTBOOK_LABEL, DEFAULT_SYSTEM_NAMESPACE)

    def disrupt(self) -> None:
        try:
            execute_command("kubectl", "delete", "all", "-l", GUESTBOOK_LABEL, "-n", DEFAULT_SYSTEM_NAMESPACE)
        except RuntimeError as exc:
            _log.warning("kubectl delete finished with error: %s", exc)


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Smoke test the example operators on a live cluster.")
    parser.add_argument("--image-tag", "-image-tag", default=DEFAULT_IMAGE_TAG,
                        help="override the image tag for operator deployments")
    parser.add_argument("--image-repo", "-image-repo", default=DEFAULT_IMAGE_REPO,
                        help="rewrite images from the default repository to a mirror")
    parser.add_argument("--ignore-tests", "-ignore-tests", default="",
                        help="comma separated list of test names to ignore")
    parser.add_argument("--skip-custom-scenarios", "-skip-custom-scenarios", action="store_true",
                        help="skip test scenarios custom for each operator")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the full deploy, disrupt, tear-down and clean-up cycle; return the exit code."""
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    harness = RealTestHarness(image_repo=args.image_repo, image_tag=args.image_tag)
    ignore = set(args.ignore_tests.split(",")) if args.ignore_tests else set()

    operators: list[CommonAddonTest] = []
    for test in (GuestbookTest(harness),):
        if test.name in ignore:
            _log.info("ignoring test: %s", test.name)
        else:
            operators.append(test)

    def verify_up(desc: str) -> None:
        verify_or_timeout(operators, lambda op: op.verify_up(), desc)

    def verify_down(desc: str) -> None:
        verify_or_timeout(operators, lambda op: op.verify_down(), desc)

    _log.info("Run: Deploying CRDs")
    for op in operators:
        op.install_crds()
    _log.info("Run: Deploying Operators")
    for op in operators:
        op.install_operators()
    _log.info("Run: Deploying Addons (1/2)")
    for op in operators:
        op.install_resources()

    _log.info("Verify: Addons started")
    try:
        verify_up("initial creation")
    except VerificationError as exc:
        _log.error("verifying all up: %s", exc)

    _log.info("Verify: Disrupted addons recover")
    for op in operators:
        op.disrupt()
    try:
        verify_up("disruption recovery")
    except VerificationError as exc:
        _log.error("verifying all up: %s", exc)

    _log.info("Verify: Addons delete")
    for op in operators:
        op.delete_resources()
    for op in operators:
        try:
            op.verify_down()
        except VerificationError:
            pass
    try:
        verify_down("tear down")
    except VerificationError as exc:
        _log.error("verifying all down: %s", exc)

    _log.info("Run: Deploying Addons (2/2)")
    for op in operators:
        op.install_resources()
    try:
        verify_up("recreation")
    except VerificationError as exc:
        _log.error("%s", exc)
        return 1

    if not args.skip_custom_scenarios:
        _log.info("Run/Verify: Addon specific scenarios")
        try:
            _verify_custom_scenarios(operators)
        except VerificationError as exc:
            _log.error("verifying custom scenarios: %s", exc)

    _log.info("Clean up: Delete Addons")
    for op in operators:
        op.delete_resources()
    _log.info("Clean up: Delete Operators")
    for op in operators:
        op.delete_operators()
    try:
        verify_down("clean up")
    except VerificationError as exc:
        _log.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())