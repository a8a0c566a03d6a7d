"""
Instance Providers

Adapters answering the two questions the controller asks an infrastructure
provider: does the instance behind a provider ID exist, and is it shut down.
SDK calls are blocking, so they run in worker threads.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import boto3
from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.identity import ClientSecretCredential, DefaultAzureCredential, ManagedIdentityCredential
from azure.mgmt.compute import ComputeManagementClient
from botocore.exceptions import BotoCoreError, ClientError

from lifecycle_controller.errors import InstanceLookupError, InvalidProviderID
from lifecycle_controller.providers import (
    AWSSettings,
    AzureSettings,
    ProviderContext,
    ProviderFamily,
)

logger = logging.getLogger(__name__)

# Some provider SDKs report a missing instance as a generic error
DEFAULT_NOT_FOUND_PATTERNS = ("does not exist",)

NotFoundPredicate = Callable[[Exception], bool]


class InstanceProvider(Protocol):
    """Instance queries consumed by the status classifier."""

    async def instance_exists(self, provider_id: str) -> bool: ...

    async def instance_shutdown(self, provider_id: str) -> bool: ...


@dataclass(frozen=True)
class NotFoundMatcher:
    """Matches errors whose message marks a not-found condition."""

    patterns: tuple[str, ...] = DEFAULT_NOT_FOUND_PATTERNS

    def __call__(self, error: Exception) -> bool:
        text = str(error).lower()
        return any(pattern.lower() in text for pattern in self.patterns if pattern)


# =============================================================================
# AWS
# =============================================================================

AWS_INSTANCE_NOT_FOUND = "InvalidInstanceID.NotFound"
AWS_STATE_TERMINATED = "terminated"
AWS_STATE_STOPPED = "stopped"


def parse_aws_instance_id(provider_id: str) -> str:
    """Extract the instance ID from ``aws:///i-xxx`` or ``aws:///<zone>/i-xxx``."""
    if not provider_id.startswith("aws://"):
        raise InvalidProviderID(provider_id, "expected aws:// scheme")
    instance_id = provider_id.rsplit("/", 1)[-1]
    if not instance_id.startswith("i-"):
        raise InvalidProviderID(provider_id, "no instance id")
    return instance_id


class AWSInstances:
    """EC2 backed instance queries."""

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_settings(cls, settings: AWSSettings) -> "AWSInstances":
        return cls(boto3.client("ec2", region_name=settings.region or None))

    def _describe(self, provider_id: str) -> dict[str, Any] | None:
        instance_id = parse_aws_instance_id(provider_id)
        try:
            response = self.client.describe_instances(InstanceIds=[instance_id])
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == AWS_INSTANCE_NOT_FOUND:
                return None
            raise InstanceLookupError(provider_id, e) from e
        except BotoCoreError as e:
            raise InstanceLookupError(provider_id, e) from e

        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                if instance.get("InstanceId") == instance_id:
                    return instance
        return None

    @staticmethod
    def _state(instance: dict[str, Any]) -> str:
        return instance.get("State", {}).get("Name", "")

    async def instance_exists(self, provider_id: str) -> bool:
        instance = await asyncio.to_thread(self._describe, provider_id)
        if instance is None:
            return False
        return self._state(instance) != AWS_STATE_TERMINATED

    async def instance_shutdown(self, provider_id: str) -> bool:
        instance = await asyncio.to_thread(self._describe, provider_id)
        if instance is None:
            return False
        return self._state(instance) == AWS_STATE_STOPPED


# =============================================================================
# Azure
# =============================================================================

AZURE_SHUTDOWN_POWER_STATES = {"stopped", "deallocating", "deallocated"}

_AZURE_VMSS_ID = re.compile(
    r"^azure:///subscriptions/(?P<subscription>[^/]+)/resourceGroups/(?P<resource_group>[^/]+)"
    r"/providers/Microsoft\.Compute/virtualMachineScaleSets/(?P<scale_set>[^/]+)"
    r"/virtualMachines/(?P<vm>[^/]+)$",
    re.IGNORECASE,
)
_AZURE_VM_ID = re.compile(
    r"^azure:///subscriptions/(?P<subscription>[^/]+)/resourceGroups/(?P<resource_group>[^/]+)"
    r"/(?:providers/Microsoft\.Compute/)?virtualMachines/(?P<vm>[^/]+)$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class AzureResource:
    """Parsed Azure VM or scale set VM provider ID."""

    subscription: str
    resource_group: str
    vm: str
    scale_set: str | None = None


def parse_azure_provider_id(provider_id: str) -> AzureResource:
    match = _AZURE_VMSS_ID.match(provider_id)
    if match:
        return AzureResource(**match.groupdict())
    match = _AZURE_VM_ID.match(provider_id)
    if match:
        return AzureResource(**match.groupdict())
    raise InvalidProviderID(provider_id, "not an azure vm or scale set vm")


def azure_credential(settings: AzureSettings) -> Any:
    """Pick a credential from the cloud config, falling back to the default chain."""
    if settings.use_managed_identity:
        return ManagedIdentityCredential(client_id=settings.client_id or None)
    if settings.tenant_id and settings.client_id and settings.client_secret:
        return ClientSecretCredential(settings.tenant_id, settings.client_id, settings.client_secret)
    return DefaultAzureCredential()


def power_state(statuses: list[Any] | None) -> str:
    """Return the ``PowerState/<x>`` value from an instance view, if any."""
    for status in statuses or []:
        code = getattr(status, "code", None) or ""
        if code.startswith("PowerState/"):
            return code.split("/", 1)[1].lower()
    return ""


class AzureInstances:
    """Azure Compute backed instance queries."""

    def __init__(self, client: Any, settings: AzureSettings):
        self.client = client
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: AzureSettings) -> "AzureInstances":
        client = ComputeManagementClient(azure_credential(settings), settings.subscription_id)
        return cls(client, settings)

    def _resource(self, provider_id: str) -> AzureResource:
        resource = parse_azure_provider_id(provider_id)
        if resource.subscription.lower() != self.settings.subscription_id.lower():
            raise InvalidProviderID(provider_id, "subscription does not match cloud config")
        return resource

    def _exists(self, provider_id: str) -> bool:
        resource = self._resource(provider_id)
        try:
            if resource.scale_set:
                self.client.virtual_machine_scale_set_vms.get(
                    resource.resource_group, resource.scale_set, resource.vm
                )
            else:
                self.client.virtual_machines.get(resource.resource_group, resource.vm)
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            raise InstanceLookupError(provider_id, e) from e
        return True

    def _shutdown(self, provider_id: str) -> bool:
        resource = self._resource(provider_id)
        try:
            if resource.scale_set:
                view = self.client.virtual_machine_scale_set_vms.get_instance_view(
                    resource.resource_group, resource.scale_set, resource.vm
                )
            else:
                view = self.client.virtual_machines.instance_view(
                    resource.resource_group, resource.vm
                )
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            raise InstanceLookupError(provider_id, e) from e

        state = power_state(getattr(view, "statuses", None))
        logger.debug("Azure power state", extra={"provider_id": provider_id, "power_state": state})
        return state in AZURE_SHUTDOWN_POWER_STATES

    async def instance_exists(self, provider_id: str) -> bool:
        return await asyncio.to_thread(self._exists, provider_id)

    async def instance_shutdown(self, provider_id: str) -> bool:
        return await asyncio.to_thread(self._shutdown, provider_id)


def build_instance_provider(context: ProviderContext) -> InstanceProvider:
    """Create the instance adapter for the active provider family."""
    if context.family is ProviderFamily.AWS:
        return AWSInstances.from_settings(context.settings)
    return AzureInstances.from_settings(context.settings)
