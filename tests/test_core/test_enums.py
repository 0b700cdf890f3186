"""
Tests for hpvs_deploy.core.enums
==================================

Platform parsing drives the image name of every run, so it is tested for
each supported value and for the casing users actually type.
"""

import pytest

from hpvs_deploy.core.enums import (
    TARGET_ARCHITECTURE,
    PipelineStage,
    Platform,
    SourceMode,
    is_target_compatible,
    normalize_architecture,
)
from hpvs_deploy.core.exceptions import ConfigurationError


# =============================================================================
# Test: Platform
# =============================================================================
class TestPlatform:
    """Tests for Platform parsing and repository naming."""

    @pytest.mark.parametrize("name", ["alpine", "fedora", "ubuntu"])
    def test_repository_name_for_every_platform(self, name: str) -> None:
        """Each platform maps to fhe-toolkit-<platform>-s390x."""
        assert Platform.parse(name).repository == f"fhe-toolkit-{name}-s390x"

    @pytest.mark.parametrize("value", ["FEDORA", "Fedora", "fEdOrA", "  fedora  "])
    def test_parse_ignores_case_and_whitespace(self, value: str) -> None:
        assert Platform.parse(value) is Platform.FEDORA

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_value_selects_fedora(self, value) -> None:
        assert Platform.parse(value) is Platform.FEDORA

    def test_unsupported_platform_raises_configuration_error(self) -> None:
        """The original spelling is kept in the error for the user."""
        with pytest.raises(ConfigurationError) as exc_info:
            Platform.parse("Debian")

        assert exc_info.value.error_code == "UNSUPPORTED_PLATFORM"
        assert "Debian" in exc_info.value.message
        assert exc_info.value.details["supported"] == ["alpine", "fedora", "ubuntu"]

    def test_platform_is_a_string(self) -> None:
        assert Platform.UBUNTU == "ubuntu"


# =============================================================================
# Test: SourceMode and PipelineStage
# =============================================================================
class TestSourceMode:
    """Tests for the local image prefix of each source mode."""

    def test_remote_registry_uses_ibmcom_images(self) -> None:
        assert SourceMode.REMOTE_REGISTRY.image_prefix == "ibmcom"

    def test_local_build_uses_local_images(self) -> None:
        assert SourceMode.LOCAL_BUILD.image_prefix == "local"

    def test_values_round_trip(self) -> None:
        assert SourceMode("local-build") is SourceMode.LOCAL_BUILD
        assert SourceMode("remote-registry") is SourceMode.REMOTE_REGISTRY


class TestPipelineStage:
    def test_stages_are_in_execution_order(self) -> None:
        assert [stage.value for stage in PipelineStage] == [
            "trust",
            "registration",
            "provisioning",
            "cleanup",
        ]


# =============================================================================
# Test: Host Architecture
# =============================================================================
class TestArchitecture:
    """Tests for host architecture normalization and compatibility."""

    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "x86_64"), ("AMD64", "x86_64"), ("arm64", "aarch64"), ("s390x", "s390x")],
    )
    def test_normalize_architecture(self, machine: str, expected: str) -> None:
        assert normalize_architecture(machine) == expected

    def test_only_s390x_is_compatible_with_the_target(self) -> None:
        assert TARGET_ARCHITECTURE == "s390x"
        assert is_target_compatible("s390x")
        assert not is_target_compatible("x86_64")
        assert not is_target_compatible("aarch64")
