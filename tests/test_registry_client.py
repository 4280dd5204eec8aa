"""Tests for registry/client.py module.

Registry HTTP traffic is mocked with respx.
"""

import gzip
import json
from unittest.mock import MagicMock

import httpx
import pytest
import respx
from docker.errors import APIError

from imagewright.crt.archive import ImageArchiveWriter, sha256_digest
from imagewright.registry.auth import RemoteOptions
from imagewright.registry.client import (
    MANIFEST_MEDIA_TYPE,
    RegistryError,
    RegistrySession,
    compress_layer,
    push_image_from_archive,
    save_image_to_archive,
)
from imagewright.registry.reference import NameOptions, parse_reference

REGISTRY = "https://registry.example.com"
REPO = f"{REGISTRY}/v2/team/app"


@pytest.fixture
def archive(tmp_path):
    """A one-layer image archive."""
    path = tmp_path / "app.tar"
    with ImageArchiveWriter(path, ["registry.example.com/team/app:1.0"]) as writer:
        diff_id = writer.add_layer(b"layer content")
        writer.set_config({"architecture": "amd64", "rootfs": {"diff_ids": [diff_id]}})
    return path


def _mock_uploads(existing: set[str] | None = None, router=respx):
    existing = existing or set()

    def head(request, digest):
        return httpx.Response(200 if digest in existing else 404)

    router.head(url__regex=rf"{REPO}/blobs/(?P<digest>.+)").mock(side_effect=head)
    router.post(f"{REPO}/blobs/uploads/").mock(
        return_value=httpx.Response(
            202, headers={"Location": "/v2/team/app/blobs/uploads/u1?state=s"}
        )
    )
    return router.put(url__startswith=f"{REPO}/blobs/uploads/u1").mock(
        return_value=httpx.Response(201)
    )


class TestCompressLayer:
    """Tests for compress_layer function."""

    def test_compresses_plain_tar(self):
        """Uncompressed data should be gzipped deterministically."""
        blob = compress_layer(b"plain")
        assert gzip.decompress(blob) == b"plain"
        assert compress_layer(b"plain") == blob

    def test_keeps_gzip(self):
        """Already gzipped data should pass through."""
        data = gzip.compress(b"x")
        assert compress_layer(data) is data


class TestRegistrySession:
    """Tests for RegistrySession."""

    def test_base_urls(self):
        """Hub should use registry-1; loopback registries should use HTTP."""
        hub = RegistrySession(parse_reference("alpine:3"), client=MagicMock())
        local = RegistrySession(parse_reference("localhost:5000/app:1"), client=MagicMock())
        assert hub.base_url == "https://registry-1.docker.io"
        assert local.base_url == "http://localhost:5000"

    @respx.mock
    def test_ping(self):
        """A 200 on /v2/ should pass."""
        respx.get(f"{REGISTRY}/v2/").mock(return_value=httpx.Response(200))
        with RegistrySession(parse_reference("registry.example.com/team/app:1")) as s:
            s.ping()

    @respx.mock
    def test_ping_unauthorized(self):
        """An unresolved 401 should raise registry_unauthorized."""
        respx.get(f"{REGISTRY}/v2/").mock(return_value=httpx.Response(401))
        with RegistrySession(parse_reference("registry.example.com/team/app:1")) as s:
            with pytest.raises(RegistryError) as exc_info:
                s.ping()
        assert exc_info.value.code == "registry_unauthorized"
        assert exc_info.value.status_code == 401

    @respx.mock
    def test_insecure_fallback(self):
        """An insecure registry should fall back to HTTP on connect errors."""
        respx.get(f"{REGISTRY}/v2/").mock(side_effect=httpx.ConnectError("refused"))
        respx.get("http://registry.example.com/v2/").mock(
            return_value=httpx.Response(200)
        )
        session = RegistrySession(
            parse_reference("registry.example.com/team/app:1"), insecure=True
        )
        with session:
            session.ping()
        assert session.base_url == "http://registry.example.com"

    @respx.mock
    def test_secure_connect_error(self):
        """Without insecure, connect errors should raise."""
        respx.get(f"{REGISTRY}/v2/").mock(side_effect=httpx.ConnectError("refused"))
        with RegistrySession(parse_reference("registry.example.com/team/app:1")) as s:
            with pytest.raises(RegistryError):
                s.ping()

    @respx.mock(assert_all_called=False)
    def test_upload_skips_existing_blob(self, respx_mock):
        """Existing blobs should not be uploaded again."""
        put_route = _mock_uploads(existing={"sha256:abc"}, router=respx_mock)
        with RegistrySession(parse_reference("registry.example.com/team/app:1")) as s:
            assert s.upload_blob("sha256:abc", b"data") is False
        assert not put_route.called

    @respx.mock
    def test_upload_blob(self):
        """New blobs should be uploaded to the location with the digest."""
        put_route = _mock_uploads()
        with RegistrySession(parse_reference("registry.example.com/team/app:1")) as s:
            assert s.upload_blob("sha256:abc", b"data") is True

        request = put_route.calls.last.request
        assert request.url.params["digest"] == "sha256:abc"
        assert request.url.params["state"] == "s"
        assert request.content == b"data"

    @respx.mock
    def test_manifest_digest_header(self):
        """The registry's digest header should be returned."""
        respx.put(f"{REPO}/manifests/1").mock(
            return_value=httpx.Response(201, headers={"Docker-Content-Digest": "sha256:d"})
        )
        with RegistrySession(parse_reference("registry.example.com/team/app:1")) as s:
            assert s.put_manifest("1", b"{}") == "sha256:d"


class TestPushImageFromArchive:
    """Tests for push_image_from_archive function."""

    @respx.mock
    def test_push(self, archive):
        """Layers and config should be uploaded, then the manifest put."""
        respx.get(f"{REGISTRY}/v2/").mock(return_value=httpx.Response(200))
        put_route = _mock_uploads()
        manifest_route = respx.put(f"{REPO}/manifests/1.0").mock(
            return_value=httpx.Response(201)
        )

        digest = push_image_from_archive(archive, "registry.example.com/team/app:1.0")

        assert put_route.call_count == 2
        manifest_request = manifest_route.calls.last.request
        assert manifest_request.headers["Content-Type"] == MANIFEST_MEDIA_TYPE
        document = json.loads(manifest_request.content)
        assert document["schemaVersion"] == 2
        assert len(document["layers"]) == 1
        assert digest == sha256_digest(manifest_request.content)

    @respx.mock
    def test_push_with_remote_name(self, archive):
        """The archive's own tag should not matter; the target name does."""
        respx.get(f"{REGISTRY}/v2/").mock(return_value=httpx.Response(200))
        other = respx.put(f"{REGISTRY}/v2/team/other/manifests/latest").mock(
            return_value=httpx.Response(201)
        )
        respx.head(url__regex=rf"{REGISTRY}/v2/team/other/blobs/.+").mock(
            return_value=httpx.Response(200)
        )

        push_image_from_archive(
            archive,
            "registry.example.com/team/other",
            name_options=NameOptions(weak_validation=True),
            remote_options=RemoteOptions(timeout=5),
        )

        assert other.called

    def test_invalid_reference(self, archive):
        """An invalid target should raise before any network traffic."""
        with pytest.raises(RegistryError) as exc_info:
            push_image_from_archive(archive, "Not A Ref")
        assert exc_info.value.code == "invalid_reference"

    def test_missing_archive(self, tmp_path):
        """A missing archive should raise RegistryError."""
        with pytest.raises(RegistryError) as exc_info:
            push_image_from_archive(tmp_path / "none.tar", "registry.example.com/a:1")
        assert exc_info.value.code == "image_archive_error"

    @respx.mock(assert_all_called=False)
    def test_push_rejected(self, archive, respx_mock):
        """A rejected manifest should raise RegistryError."""
        respx_mock.get(f"{REGISTRY}/v2/").mock(return_value=httpx.Response(200))
        _mock_uploads(router=respx_mock)
        respx_mock.put(f"{REPO}/manifests/1.0").mock(return_value=httpx.Response(400))
        with pytest.raises(RegistryError) as exc_info:
            push_image_from_archive(archive, "registry.example.com/team/app:1.0")
        assert exc_info.value.status_code == 400


class TestSaveImageToArchive:
    """Tests for save_image_to_archive function."""

    def test_save(self, tmp_path):
        """The image should be exported to the destination."""
        client = MagicMock()
        client.images.get.return_value.save.return_value = iter([b"tar"])
        dest = save_image_to_archive(client, "app:1", tmp_path / "app.tar")
        assert dest.read_bytes() == b"tar"

    def test_save_failure(self, tmp_path):
        """Export failures should map to image_save_error."""
        client = MagicMock()
        client.images.get.side_effect = APIError("no such image")
        with pytest.raises(RegistryError) as exc_info:
            save_image_to_archive(client, "app:1", tmp_path / "app.tar")
        assert exc_info.value.code == "image_save_error"

    def test_invalid_reference(self, tmp_path):
        """An invalid reference should fail before calling the daemon."""
        client = MagicMock()
        with pytest.raises(RegistryError):
            save_image_to_archive(client, "Bad Ref", tmp_path / "app.tar")
        client.images.get.assert_not_called()
