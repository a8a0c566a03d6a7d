"""
Provider Context

Closed set of supported infrastructure provider families and the settings
each one carries. Contexts are built once at startup and never mutated.
"""

from dataclasses import dataclass, field
from enum import Enum

from lifecycle_controller.errors import ProviderNotSupported

VM_TYPE_VMSS = "vmss"
VM_TYPE_STANDARD = "standard"


class ProviderFamily(str, Enum):
    """Supported provider families."""

    AWS = "aws"
    AZURE = "azure"

    @classmethod
    def from_name(cls, name: str) -> "ProviderFamily":
        """Look up a family by its provider name, failing fast on unknown names."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ProviderNotSupported(name) from None


@dataclass(frozen=True)
class AWSSettings:
    """AWS settings. Provider IDs derive from the node name alone."""

    region: str = ""


@dataclass(frozen=True)
class AzureSettings:
    """Azure settings needed to compose resource paths."""

    subscription_id: str
    resource_group: str
    vm_type: str = VM_TYPE_STANDARD
    location: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    use_managed_identity: bool = False

    @property
    def uses_scale_sets(self) -> bool:
        return self.vm_type.lower() == VM_TYPE_VMSS


@dataclass(frozen=True)
class ProviderContext:
    """Active provider family plus its settings payload."""

    family: ProviderFamily
    settings: AWSSettings | AzureSettings

    @property
    def name(self) -> str:
        return self.family.value


def aws_context(region: str = "") -> ProviderContext:
    return ProviderContext(ProviderFamily.AWS, AWSSettings(region=region))


def azure_context(
    subscription_id: str,
    resource_group: str,
    vm_type: str = VM_TYPE_STANDARD,
    location: str = "",
) -> ProviderContext:
    return ProviderContext(
        ProviderFamily.AZURE,
        AzureSettings(
            subscription_id=subscription_id,
            resource_group=resource_group,
            vm_type=vm_type,
            location=location,
        ),
    )
