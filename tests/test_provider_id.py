"""
Tests for provider ID resolution
"""

import pytest

from conftest import AZURE_RESOURCE_GROUP, AZURE_SUBSCRIPTION


class TestAWSProviderID:
    """Tests for AWS provider ID derivation."""

    def test_valid_node_name(self):
        """Test the i-<id> tail of a four segment name becomes the instance ID."""
        from lifecycle_controller.provider_id import build_aws_provider_id

        assert (
            build_aws_provider_id("k8s-controllers-i-042988b09f6a493cc")
            == "aws:///i-042988b09f6a493cc"
        )

    @pytest.mark.parametrize(
        "name",
        [
            "042988b09f6a493cc",
            "k8s-controllers-042988b09f6a493cc",
            "k8s-controllers-x-042988b09f6a493cc",
            "k8s-pool-controllers-i-042988b09f6a493cc",
            "",
        ],
    )
    def test_invalid_node_names(self, name):
        """Test names that are not exactly X-Y-i-<id> are rejected."""
        from lifecycle_controller.errors import InvalidName
        from lifecycle_controller.provider_id import build_aws_provider_id

        with pytest.raises(InvalidName):
            build_aws_provider_id(name)

    def test_dispatch_through_context(self, aws_ctx):
        """Test generate_provider_id routes AWS contexts to the AWS builder."""
        from lifecycle_controller.provider_id import generate_provider_id

        assert generate_provider_id(aws_ctx, "a-b-i-0123") == "aws:///i-0123"


class TestAzureNameParsing:
    """Tests for scale set machine name parsing."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("aks-agentpool-34751183-vmss000001", "1"),
            ("aks-agentpool-34751183-vmss001001", "1001"),
            ("aks-agentpool-34751183-vmss000000", "0"),
            ("aks-agentpool-34751183-vmss123456", "123456"),
        ],
    )
    def test_vm_id_strips_leading_zeros(self, name, expected):
        """Test the ordinal is parsed as a decimal number."""
        from lifecycle_controller.provider_id import extract_azure_vm_id

        assert extract_azure_vm_id(name) == expected

    @pytest.mark.parametrize("name", ["MyCustomName", "1234", "aks-pool-vmss00000a", "vmss-٠٠٠٠٠١"])
    def test_vm_id_rejects_non_digit_suffix(self, name):
        """Test names without a six digit ASCII suffix are rejected."""
        from lifecycle_controller.errors import InvalidName
        from lifecycle_controller.provider_id import extract_azure_vm_id

        with pytest.raises(InvalidName):
            extract_azure_vm_id(name)

    def test_scale_set_name(self):
        """Test the scale set is the name without its ordinal."""
        from lifecycle_controller.provider_id import extract_azure_scale_set

        assert (
            extract_azure_scale_set("aks-agentpool-34751183-vmss000001")
            == "aks-agentpool-34751183-vmss"
        )

    @pytest.mark.parametrize("name", ["", "000001", "abc"])
    def test_scale_set_requires_prefix(self, name):
        """Test names of six characters or fewer have no scale set part."""
        from lifecycle_controller.errors import InvalidName
        from lifecycle_controller.provider_id import extract_azure_scale_set

        with pytest.raises(InvalidName):
            extract_azure_scale_set(name)


class TestAzureProviderID:
    """Tests for Azure provider ID composition."""

    def test_scale_set_provider_id(self, azure_vmss_ctx):
        """Test scale set configs compose the VMSS resource path."""
        from lifecycle_controller.provider_id import generate_provider_id

        provider_id = generate_provider_id(azure_vmss_ctx, "aks-agentpool-34751183-vmss000001")

        assert provider_id == (
            f"azure:///subscriptions/{AZURE_SUBSCRIPTION}/resourceGroups/{AZURE_RESOURCE_GROUP}"
            "/providers/Microsoft.Compute/virtualMachineScaleSets/aks-agentpool-34751183-vmss"
            "/virtualMachines/1"
        )

    def test_standard_vm_provider_id(self, azure_vm_ctx):
        """Test non scale set configs compose the flat VM path."""
        from lifecycle_controller.provider_id import generate_provider_id

        provider_id = generate_provider_id(azure_vm_ctx, "aks-agentpool-34751183-vmss001001")

        assert provider_id == (
            f"azure:///subscriptions/{AZURE_SUBSCRIPTION}/resourceGroups/{AZURE_RESOURCE_GROUP}"
            "/virtualMachines/1001"
        )

    def test_vm_type_is_case_insensitive(self):
        """Test VMSS is recognised regardless of case."""
        from lifecycle_controller.providers import azure_context
        from lifecycle_controller.provider_id import generate_provider_id

        ctx = azure_context("sub", "rg", vm_type="VMSS")
        assert "virtualMachineScaleSets" in generate_provider_id(ctx, "pool-vmss000002")

    def test_invalid_name_fails(self, azure_vmss_ctx):
        """Test custom names cannot be resolved."""
        from lifecycle_controller.errors import InvalidName
        from lifecycle_controller.provider_id import generate_provider_id

        with pytest.raises(InvalidName):
            generate_provider_id(azure_vmss_ctx, "MyCustomName")

    def test_context_without_azure_settings(self):
        """Test an azure family carrying AWS settings is rejected."""
        from lifecycle_controller.errors import ProviderContextInvalid
        from lifecycle_controller.providers import AWSSettings, ProviderContext, ProviderFamily
        from lifecycle_controller.provider_id import build_azure_provider_id

        ctx = ProviderContext(ProviderFamily.AZURE, AWSSettings())
        with pytest.raises(ProviderContextInvalid):
            build_azure_provider_id(ctx, "aks-agentpool-34751183-vmss000001")


class TestGetProviderID:
    """Tests for stored provider ID passthrough."""

    def test_stored_provider_id_returned_unchanged(self, make_node, azure_vmss_ctx):
        """Test a recorded provider ID wins over derivation."""
        from lifecycle_controller.provider_id import get_provider_id

        node = make_node(name="MyCustomName", provider_id="azure:///anything/at/all")
        assert get_provider_id(node, azure_vmss_ctx) == "azure:///anything/at/all"

    def test_stored_provider_id_skips_derivation(self, make_node, aws_ctx):
        """Test derivation is never invoked when the node carries an ID."""
        from unittest.mock import patch
        from lifecycle_controller.provider_id import get_provider_id

        node = make_node(provider_id="aws:///us-east-1a/i-0abc")
        with patch("lifecycle_controller.provider_id.generate_provider_id") as mock_generate:
            assert get_provider_id(node, aws_ctx) == "aws:///us-east-1a/i-0abc"
        mock_generate.assert_not_called()

    def test_missing_provider_id_is_derived(self, make_node, aws_ctx):
        """Test nodes without an ID fall back to name derivation."""
        from lifecycle_controller.provider_id import get_provider_id

        node = make_node(name="k8s-controllers-i-042988b09f6a493cc")
        assert get_provider_id(node, aws_ctx) == "aws:///i-042988b09f6a493cc"


class TestProviderFamily:
    """Tests for provider family lookup."""

    @pytest.mark.parametrize("name,expected", [("aws", "aws"), ("Azure", "azure"), (" AWS ", "aws")])
    def test_known_families(self, name, expected):
        """Test names resolve case-insensitively."""
        from lifecycle_controller.providers import ProviderFamily

        assert ProviderFamily.from_name(name).value == expected

    def test_unknown_family_fails_fast(self):
        """Test unknown families raise ProviderNotSupported."""
        from lifecycle_controller.errors import ProviderNotSupported
        from lifecycle_controller.providers import ProviderFamily

        with pytest.raises(ProviderNotSupported) as exc_info:
            ProviderFamily.from_name("gce")
        assert exc_info.value.family == "gce"
