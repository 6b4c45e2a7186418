import pytest
import requests
import responses

from addonkit.http_repository import HTTPRepository
from addonkit.repository import Version

CHANNEL_TEXT = """manifests:
- name: nginx
  version: 0.1.0
"""


def test_make_url_adds_separator():
    repo = HTTPRepository("https://example.com")
    assert repo.make_url("packages", "nginx") == "https://example.com/packages/nginx"


def test_make_url_keeps_single_slash():
    repo = HTTPRepository("https://example.com/")
    assert repo.make_url("stable") == "https://example.com/stable"


def test_make_url_without_paths_is_base():
    repo = HTTPRepository("https://example.com/channels")
    assert repo.make_url() == repo.base_url


def test_load_channel():
    repo = HTTPRepository("https://example.com/channels")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "https://example.com/channels/stable", body=CHANNEL_TEXT, status=200)
        channel = repo.load_channel("stable")
    assert channel.manifests == [Version(package="nginx", version="0.1.0")]


def test_load_channel_not_found():
    repo = HTTPRepository("https://example.com")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "https://example.com/stable", body="missing", status=404)
        with pytest.raises(OSError) as info:
            repo.load_channel("stable")
    message = str(info.value)
    assert message.startswith("error reading channel ")
    assert "unexpected response code" in message
    assert "missing" in message


def test_load_channel_invalid_name_makes_no_request():
    repo = HTTPRepository("https://example.com")
    with responses.RequestsMock() as rsps:
        with pytest.raises(ValueError) as info:
            repo.load_channel("../stable")
        assert len(rsps.calls) == 0
    assert str(info.value).startswith("invalid channel name: ")


def test_load_channel_unparseable():
    repo = HTTPRepository("https://example.com")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "https://example.com/stable", body="manifests: [oops", status=200)
        with pytest.raises(ValueError) as info:
            repo.load_channel("stable")
    assert str(info.value).startswith("error parsing channel ")


def test_load_channel_connection_error():
    repo = HTTPRepository("https://example.com")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "https://example.com/stable", body=requests.ConnectionError("refused"))
        with pytest.raises(OSError) as info:
            repo.load_channel("stable")
    assert "error fetching" in str(info.value)


def test_load_manifest():
    repo = HTTPRepository("https://example.com/repo")
    url = repo.make_url("packages", "nginx", "1.2.3", "manifest.yaml")
    body = "kind: Service\nmetadata:\n  name: foo\n"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, body=body, status=200)
        result = repo.load_manifest("nginx", "1.2.3")
    assert result == {url: body}


def test_load_manifest_server_error():
    repo = HTTPRepository("https://example.com")
    url = repo.make_url("packages", "nginx", "1.2.3", "manifest.yaml")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, url, body="boom", status=500)
        with pytest.raises(OSError) as info:
            repo.load_manifest("nginx", "1.2.3")
    assert str(info.value).startswith("error reading package ")


@pytest.mark.parametrize("package, manifest_id", [("nginx", ".1"), ("Nginx", "1.0"), ("nginx", "1/0")])
def test_load_manifest_invalid_names(package, manifest_id):
    with pytest.raises(ValueError):
        HTTPRepository("https://example.com").load_manifest(package, manifest_id)