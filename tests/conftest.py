"""
Pytest configuration and fixtures for lifecycle controller tests
"""

import os
import sys
import pytest
from pathlib import Path
from unittest.mock import MagicMock, AsyncMock

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


AZURE_SUBSCRIPTION = "76786c64-3d1b-4f99-a9b5-40a79689adac"
AZURE_RESOURCE_GROUP = "mc_aks-my_kube-cluster_eastus2"


@pytest.fixture
def clean_env():
    """Fixture that strips LIFECYCLE_* variables and restores the env afterwards."""
    original_env = os.environ.copy()

    for key in list(os.environ):
        if key.startswith("LIFECYCLE_") or key in ("KUBECONFIG", "AWS_REGION", "AWS_DEFAULT_REGION"):
            del os.environ[key]

    yield os.environ

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def aws_ctx():
    """AWS provider context."""
    from lifecycle_controller.providers import aws_context

    return aws_context("us-east-1")


@pytest.fixture
def azure_vmss_ctx():
    """Azure provider context using scale sets."""
    from lifecycle_controller.providers import azure_context

    return azure_context(AZURE_SUBSCRIPTION, AZURE_RESOURCE_GROUP, vm_type="vmss")


@pytest.fixture
def azure_vm_ctx():
    """Azure provider context using standalone VMs."""
    from lifecycle_controller.providers import azure_context

    return azure_context(AZURE_SUBSCRIPTION, AZURE_RESOURCE_GROUP)


@pytest.fixture
def make_node():
    """Factory for ClusterNode values."""
    from lifecycle_controller.state import ClusterNode, ConditionStatus, ReadyCondition

    def _make(name="ip-10-0-0-1-i-0abc123", ready=ConditionStatus.FALSE, provider_id="", uid="uid-1"):
        condition = None
        if ready is not None:
            condition = ReadyCondition(status=ready, reason="KubeletNotReady")
        return ClusterNode(name=name, provider_id=provider_id, ready_condition=condition, uid=uid)

    return _make


@pytest.fixture
def mock_store():
    """Fixture for a mocked node store."""
    store = MagicMock()
    store.get = AsyncMock()
    store.delete = AsyncMock(return_value=None)
    return store


@pytest.fixture
def mock_events():
    """Fixture for a mocked event sink."""
    events = MagicMock()
    events.record = MagicMock(return_value=None)
    return events


@pytest.fixture
def mock_instances():
    """Fixture for a mocked instance provider. Defaults to an existing, running instance."""
    instances = MagicMock()
    instances.instance_exists = AsyncMock(return_value=True)
    instances.instance_shutdown = AsyncMock(return_value=False)
    return instances


@pytest.fixture
def mock_core_api():
    """Fixture for a mocked kubernetes CoreV1Api."""
    return MagicMock()


# Markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
