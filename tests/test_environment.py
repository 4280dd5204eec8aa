"""Tests for environment detection."""

from imagewright.environment import DS_IMAGE_ENV_VAR, detect_ds_image, detect_in_container


class TestDetectInContainer:
    """Test detect_in_container function."""

    def test_marker_file(self, tmp_path) -> None:
        """A runtime marker file should mean a container."""
        marker = tmp_path / ".dockerenv"
        marker.touch()
        assert detect_in_container((str(marker),), tmp_path / "cgroup")

    def test_cgroup(self, tmp_path) -> None:
        """A container cgroup path should mean a container."""
        cgroup = tmp_path / "cgroup"
        cgroup.write_text("0::/kubepods/besteffort/pod1\n")
        assert detect_in_container((), cgroup)

    def test_host(self, tmp_path) -> None:
        """No marker and a host cgroup should mean no container."""
        cgroup = tmp_path / "cgroup"
        cgroup.write_text("0::/init.scope\n")
        assert not detect_in_container((str(tmp_path / "none"),), cgroup)
        assert not detect_in_container((), tmp_path / "missing")


class TestDetectDsImage:
    """Test detect_ds_image function."""

    def test_env_var(self, tmp_path, monkeypatch) -> None:
        """The image environment variable should be honoured."""
        monkeypatch.setenv(DS_IMAGE_ENV_VAR, "true")
        assert detect_ds_image(str(tmp_path / "none"))

    def test_marker(self, tmp_path, monkeypatch) -> None:
        """The image marker file should be honoured."""
        monkeypatch.delenv(DS_IMAGE_ENV_VAR, raising=False)
        marker = tmp_path / "marker"
        assert not detect_ds_image(str(marker))
        marker.touch()
        assert detect_ds_image(str(marker))
