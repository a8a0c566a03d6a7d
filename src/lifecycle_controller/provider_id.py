"""
Provider ID Resolution

Derives the provider ID of the instance backing a node when the node does
not carry one, following each provider family's node naming convention.
"""

from lifecycle_controller.errors import (
    InvalidName,
    ProviderContextInvalid,
    ProviderNotSupported,
)
from lifecycle_controller.providers import AzureSettings, ProviderContext, ProviderFamily
from lifecycle_controller.state import ClusterNode

# Azure scale set instances end in a fixed-width, zero-padded ordinal
AZURE_ORDINAL_WIDTH = 6

AZURE_VMSS_PROVIDER_ID = (
    "azure:///subscriptions/{subscription}/resourceGroups/{resource_group}"
    "/providers/Microsoft.Compute/virtualMachineScaleSets/{scale_set}"
    "/virtualMachines/{vm_id}"
)
AZURE_VM_PROVIDER_ID = (
    "azure:///subscriptions/{subscription}/resourceGroups/{resource_group}"
    "/virtualMachines/{vm_id}"
)


def get_provider_id(node: ClusterNode, context: ProviderContext) -> str:
    """Return the node's recorded provider ID, or derive one from its name."""
    if node.provider_id:
        return node.provider_id
    return generate_provider_id(context, node.name)


def generate_provider_id(context: ProviderContext, name: str) -> str:
    """Derive a provider ID for a node name under the active provider."""
    if context.family is ProviderFamily.AWS:
        return build_aws_provider_id(name)
    if context.family is ProviderFamily.AZURE:
        return build_azure_provider_id(context, name)
    raise ProviderNotSupported(str(context.family))


def build_aws_provider_id(name: str) -> str:
    """
    Build an AWS provider ID from a node name.

    For example ``k8s-controllers-i-042988b09f6a493cc`` becomes
    ``aws:///i-042988b09f6a493cc``.
    """
    parts = name.split("-")
    if len(parts) != 4 or parts[2] != "i":
        raise InvalidName(name)
    return f"aws:///{parts[2]}-{parts[3]}"


def build_azure_provider_id(context: ProviderContext, name: str) -> str:
    """Build an Azure VM or scale set VM provider ID from a node name."""
    settings = context.settings
    if not isinstance(settings, AzureSettings):
        raise ProviderContextInvalid("cloud provider is not azure")

    scale_set = extract_azure_scale_set(name)
    vm_id = extract_azure_vm_id(name)

    if settings.uses_scale_sets:
        return AZURE_VMSS_PROVIDER_ID.format(
            subscription=settings.subscription_id,
            resource_group=settings.resource_group,
            scale_set=scale_set,
            vm_id=vm_id,
        )
    return AZURE_VM_PROVIDER_ID.format(
        subscription=settings.subscription_id,
        resource_group=settings.resource_group,
        vm_id=vm_id,
    )


def extract_azure_vm_id(name: str) -> str:
    """
    Return the instance ordinal of a scale set machine name.

    ``aks-agentpool-34751183-vmss001001`` becomes ``1001``.
    """
    suffix = name[-AZURE_ORDINAL_WIDTH:]
    if len(suffix) != AZURE_ORDINAL_WIDTH or not (suffix.isascii() and suffix.isdigit()):
        raise InvalidName(name)
    return str(int(suffix))


def extract_azure_scale_set(name: str) -> str:
    """
    Return the scale set part of a machine name.

    ``aks-agentpool-34751183-vmss001001`` becomes ``aks-agentpool-34751183-vmss``.
    """
    if len(name) <= AZURE_ORDINAL_WIDTH:
        raise InvalidName(name)
    return name[:-AZURE_ORDINAL_WIDTH]
