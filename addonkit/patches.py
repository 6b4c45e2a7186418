"""Extraction of the patches an addon object asks to apply to its manifest."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import yaml

from addonkit.api import PatchSpec, Unstructured

_log = logging.getLogger(__name__)


def _decode_raw(raw: Any) -> Unstructured:
    if isinstance(raw, Mapping):
        return Unstructured(dict(raw))
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        raise ValueError(f"error parsing json into unstructured object: unsupported patch {type(raw).__name__}")
    try:
        decoded = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"error parsing json into unstructured object: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ValueError("error parsing json into unstructured object: patch is not an object")
    return Unstructured(decoded)


def extract_patches(obj: Any) -> list[Unstructured]:
    """Return the patches declared on an addon object.

    Unstructured objects supply them under spec.patches; other objects must
    expose a ``patch_spec`` attribute holding a PatchSpec.
    """
    if isinstance(obj, Unstructured):
        try:
            raw_patches = obj.get_nested("spec", "patches")
        except TypeError as exc:
            raise ValueError(f"unable to get patches from unstructured: {exc}") from exc
        if raw_patches is None:
            return []
        if not isinstance(raw_patches, list):
            raise ValueError(
                f"unable to get patches from unstructured: spec.patches is {type(raw_patches).__name__}, expected a list"
            )
        patches = []
        for patch in raw_patches:
            if not isinstance(patch, dict):
                raise TypeError(f"patch is {type(patch).__name__}, expected a mapping")
            patches.append(Unstructured(patch))
        return patches

    spec = getattr(obj, "patch_spec", None)
    if isinstance(spec, PatchSpec):
        patches = []
        for raw in spec.patches:
            patch = _decode_raw(raw)
            _log.debug("parsed patch: %s", patch.data)
            patches.append(patch)
        return patches

    raise TypeError(f"provided object ({type(obj).__name__}) does not implement Patchable type")