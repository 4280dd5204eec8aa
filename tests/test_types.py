"""Tests for shared types module."""

from imagewright.types import (
    CommandState,
    DockerClientConfig,
    ExitCode,
    ExitCodeCause,
    ExitCodeType,
    GlobalParams,
    OutputFormat,
)


class TestEnums:
    """Test enum definitions."""

    def test_output_format_values(self) -> None:
        """OutputFormat should have expected values."""
        assert OutputFormat.TEXT.value == "text"
        assert OutputFormat.JSON.value == "json"
        assert OutputFormat.SUBSCRIPTION.value == "subscription"

    def test_command_state_values(self) -> None:
        """CommandState should have the lifecycle names."""
        assert CommandState.STARTED.value == "started"
        assert CommandState.COMPLETED.value == "completed"
        assert CommandState.DONE.value == "done"
        assert CommandState.EXITED.value == "exited"

    def test_exit_code_categories_do_not_overlap_causes(self) -> None:
        """Category bits should sit above every cause value."""
        for category in ExitCodeType:
            for cause in ExitCodeCause:
                assert int(category) & int(cause) == 0


class TestExitCode:
    """Test ExitCode composition."""

    def test_value_is_category_or_cause(self) -> None:
        """value should OR the category and the cause."""
        code = ExitCode(ExitCodeType.COMMON, ExitCodeCause.NO_DOCKER_CONNECT_INFO)
        assert code.value == 0x01000000 | 3
        assert int(code) == code.value
        assert str(code) == str(code.value)

    def test_has_category_and_cause(self) -> None:
        """has_category/has_cause should inspect the composed value."""
        code = ExitCode(ExitCodeType.COMMON, ExitCodeCause.NO_DOCKER_CONNECT_INFO)
        assert code.has_category(ExitCodeType.COMMON)
        assert code.has_cause(ExitCodeCause.NO_DOCKER_CONNECT_INFO)
        assert not code.has_cause(ExitCodeCause.UNSUPPORTED_ENGINE)

    def test_has_category_is_exact(self) -> None:
        """A category should not match categories whose bits it shares."""
        code = ExitCode(ExitCodeType.REGISTRY, ExitCodeCause.OTHER)
        assert code.has_category(ExitCodeType.REGISTRY)
        assert not code.has_category(ExitCodeType.COMMON)
        assert not code.has_category(ExitCodeType.IMAGEBUILD)
        assert not ExitCode(ExitCodeType.COMMON).has_category(ExitCodeType.REGISTRY)
        assert code.has_cause(ExitCodeCause.OTHER)

    def test_default_cause_is_none(self) -> None:
        """A bare category should carry no cause."""
        code = ExitCode(ExitCodeType.REGISTRY)
        assert code.cause == ExitCodeCause.NONE
        assert code.value == int(ExitCodeType.REGISTRY)

    def test_frozen(self) -> None:
        """ExitCode should be hashable and comparable."""
        a = ExitCode(ExitCodeType.IMAGEBUILD, ExitCodeCause.UNSUPPORTED_ENGINE)
        b = ExitCode(ExitCodeType.IMAGEBUILD, ExitCodeCause.UNSUPPORTED_ENGINE)
        assert a == b
        assert len({a, b}) == 1


class TestDataclasses:
    """Test dataclass definitions."""

    def test_docker_client_config_defaults(self) -> None:
        """DockerClientConfig should default to auto-negotiation."""
        config = DockerClientConfig()
        assert config.host is None
        assert config.tls_verify is False
        assert config.api_version == "auto"

    def test_global_params_defaults(self) -> None:
        """GlobalParams should have sensible defaults."""
        params = GlobalParams()
        assert params.check_version is True
        assert params.debug is False
        assert params.in_container is False
        assert isinstance(params.client_config, DockerClientConfig)
