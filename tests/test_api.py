import pytest

from addonkit.api import (
    CommonObject,
    CommonSpec,
    CommonStatus,
    Unstructured,
    get_common_name,
    get_common_spec,
    get_common_status,
    set_common_status,
)


class Addon(CommonObject):
    def __init__(self, spec=None, status=None):
        self._spec = spec or CommonSpec()
        self._status = status or CommonStatus()

    @property
    def component_name(self):
        return "testresource"

    @property
    def common_spec(self):
        return self._spec

    @property
    def common_status(self):
        return self._status

    @common_status.setter
    def common_status(self, status):
        self._status = status


def test_common_spec_omits_empty_fields():
    assert CommonSpec().to_dict() == {}


def test_common_status_always_has_healthy():
    assert CommonStatus().to_dict() == {"healthy": False}


def test_common_spec_round_trip():
    spec = CommonSpec(version="1.0.0", channel="stable")
    assert CommonSpec.from_dict(spec.to_dict()) == spec


def test_common_status_round_trip():
    status = CommonStatus(healthy=True, errors=["a", "b"], phase="Current")
    assert CommonStatus.from_dict(status.to_dict()) == status


def test_common_status_rejects_wrong_types():
    with pytest.raises(TypeError):
        CommonStatus.from_dict({"healthy": "yes"})
    with pytest.raises(TypeError):
        CommonStatus.from_dict({"errors": [1]})


def test_common_spec_rejects_non_string():
    with pytest.raises(TypeError):
        CommonSpec.from_dict({"version": 3})


def test_get_nested_missing_returns_none():
    u = Unstructured({"spec": {}})
    assert u.get_nested("spec", "patches") is None
    assert u.get_nested("status", "healthy") is None


def test_get_nested_through_non_mapping_raises():
    u = Unstructured({"spec": "text"})
    with pytest.raises(TypeError):
        u.get_nested("spec", "patches")


def test_set_nested_creates_intermediate_maps():
    u = Unstructured()
    u.set_nested("1.2.3", "spec", "descriptor", "version")
    assert u.data == {"spec": {"descriptor": {"version": "1.2.3"}}}
    assert u.get_nested("spec", "descriptor", "version") == "1.2.3"


def test_set_nested_through_non_mapping_raises():
    u = Unstructured({"spec": ["x"]})
    with pytest.raises(TypeError):
        u.set_nested("v", "spec", "version")


def test_unstructured_metadata_properties():
    u = Unstructured(
        {
            "apiVersion": "addons.example.org/v1alpha1",
            "kind": "Guestbook",
            "metadata": {"name": "gb", "namespace": "ns", "annotations": {"a": "b"}},
        }
    )
    assert u.kind == "Guestbook"
    assert u.api_version == "addons.example.org/v1alpha1"
    assert (u.name, u.namespace) == ("gb", "ns")
    assert u.annotations == {"a": "b"}


def test_get_common_spec_from_unstructured():
    u = Unstructured({"spec": {"version": "1.0.0", "channel": "stable"}})
    assert get_common_spec(u) == CommonSpec(version="1.0.0", channel="stable")


def test_get_common_spec_missing_is_default():
    assert get_common_spec(Unstructured({})) == CommonSpec()


def test_get_common_status_missing_is_default():
    assert get_common_status(Unstructured({})) == CommonStatus()


def test_set_then_get_status_unstructured():
    u = Unstructured({"kind": "Guestbook"})
    status = CommonStatus(healthy=True, errors=["oops"], phase="InProgress")
    set_common_status(u, status)
    assert u.get_nested("status") == status.to_dict()
    assert get_common_status(u) == status


def test_typed_object_accessors():
    spec = CommonSpec(version="1.0.0")
    obj = Addon(spec=spec)
    assert get_common_spec(obj) is spec
    assert get_common_name(obj) == "testresource"
    status = CommonStatus(healthy=True)
    set_common_status(obj, status)
    assert get_common_status(obj) is status


def test_common_name_unstructured_is_lowercased_kind():
    assert get_common_name(Unstructured({"kind": "Guestbook"})) == "guestbook"


@pytest.mark.parametrize(
    "func", [get_common_status, get_common_spec, get_common_name]
)
def test_unsupported_instance_raises(func):
    with pytest.raises(TypeError, match="is not CommonObject or unstructured"):
        func({"kind": "Guestbook"})


def test_set_status_unsupported_instance_raises():
    with pytest.raises(TypeError):
        set_common_status(object(), CommonStatus())


def test_status_not_a_mapping_raises():
    with pytest.raises(TypeError):
        get_common_status(Unstructured({"status": "broken"}))