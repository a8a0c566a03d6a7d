"""
Tests for the Kubernetes node store and event recorder
"""

import asyncio

import pytest
from unittest.mock import MagicMock, patch


def k8s_condition(type_, status, reason="KubeletReady"):
    condition = MagicMock()
    condition.type = type_
    condition.status = status
    condition.reason = reason
    condition.message = "kubelet status"
    condition.last_transition_time = None
    return condition


def k8s_node(name="node-a", provider_id=None, conditions=None, uid="uid-a"):
    node = MagicMock()
    node.metadata.name = name
    node.metadata.uid = uid
    node.spec.provider_id = provider_id
    node.status.conditions = conditions
    return node


def api_exception(status):
    from kubernetes.client.rest import ApiException

    return ApiException(status=status, reason="error")


class TestNodeConversion:
    """Tests for V1Node conversion."""

    def test_ready_node(self):
        """Test the Ready condition and provider ID are carried over."""
        from lifecycle_controller.state import ConditionStatus
        from lifecycle_controller.store import node_from_k8s

        node = node_from_k8s(k8s_node(
            provider_id="aws:///us-east-1a/i-0abc",
            conditions=[
                k8s_condition("MemoryPressure", "False"),
                k8s_condition("Ready", "True"),
            ],
        ))

        assert node.name == "node-a"
        assert node.uid == "uid-a"
        assert node.provider_id == "aws:///us-east-1a/i-0abc"
        assert node.ready_condition.status == ConditionStatus.TRUE
        assert node.ready_condition.reason == "KubeletReady"

    def test_missing_provider_id(self):
        """Test a node without spec.providerID gets an empty provider ID."""
        from lifecycle_controller.store import node_from_k8s

        assert node_from_k8s(k8s_node(conditions=[])).provider_id == ""

    def test_missing_ready_condition(self):
        """Test nodes without a Ready condition convert with None."""
        from lifecycle_controller.store import node_from_k8s

        node = node_from_k8s(k8s_node(conditions=[k8s_condition("DiskPressure", "False")]))
        assert node.ready_condition is None

    def test_unrecognised_status_is_unknown(self):
        """Test unexpected status strings map to Unknown."""
        from lifecycle_controller.state import ConditionStatus
        from lifecycle_controller.store import ready_condition_from_k8s

        condition = ready_condition_from_k8s([k8s_condition("Ready", "Maybe")])
        assert condition.status == ConditionStatus.UNKNOWN


class TestKubernetesNodeStore:
    """Tests for KubernetesNodeStore."""

    @pytest.mark.asyncio
    async def test_get(self, mock_core_api):
        """Test get reads and converts the node."""
        from lifecycle_controller.store import KubernetesNodeStore

        mock_core_api.read_node.return_value = k8s_node(conditions=[k8s_condition("Ready", "False")])

        node = await KubernetesNodeStore(mock_core_api).get("node-a")

        mock_core_api.read_node.assert_called_once_with("node-a")
        assert node.name == "node-a"

    @pytest.mark.asyncio
    async def test_get_not_found(self, mock_core_api):
        """Test a 404 maps to NodeNotFound."""
        from lifecycle_controller.errors import NodeNotFound
        from lifecycle_controller.store import KubernetesNodeStore

        mock_core_api.read_node.side_effect = api_exception(404)

        with pytest.raises(NodeNotFound):
            await KubernetesNodeStore(mock_core_api).get("node-a")

    @pytest.mark.asyncio
    async def test_get_other_errors_propagate(self, mock_core_api):
        """Test non-404 API errors are raised unchanged."""
        from kubernetes.client.rest import ApiException
        from lifecycle_controller.store import KubernetesNodeStore

        mock_core_api.read_node.side_effect = api_exception(500)

        with pytest.raises(ApiException):
            await KubernetesNodeStore(mock_core_api).get("node-a")

    @pytest.mark.asyncio
    async def test_delete(self, mock_core_api):
        """Test delete removes the node."""
        from lifecycle_controller.store import KubernetesNodeStore

        await KubernetesNodeStore(mock_core_api).delete("node-a")

        mock_core_api.delete_node.assert_called_once_with("node-a")

    @pytest.mark.asyncio
    async def test_delete_not_found(self, mock_core_api):
        """Test deleting a missing node raises NodeNotFound."""
        from lifecycle_controller.errors import NodeNotFound
        from lifecycle_controller.store import KubernetesNodeStore

        mock_core_api.delete_node.side_effect = api_exception(404)

        with pytest.raises(NodeNotFound):
            await KubernetesNodeStore(mock_core_api).delete("node-a")

    @pytest.mark.asyncio
    async def test_delete_forbidden(self, mock_core_api):
        """Test RBAC failures propagate."""
        from kubernetes.client.rest import ApiException
        from lifecycle_controller.store import KubernetesNodeStore

        mock_core_api.delete_node.side_effect = api_exception(403)

        with pytest.raises(ApiException):
            await KubernetesNodeStore(mock_core_api).delete("node-a")


class TestKubernetesEventRecorder:
    """Tests for KubernetesEventRecorder."""

    def test_build_event(self, mock_core_api):
        """Test events reference the node and carry the controller component."""
        from lifecycle_controller.state import NodeRef
        from lifecycle_controller.store import KubernetesEventRecorder

        recorder = KubernetesEventRecorder(mock_core_api)
        event = recorder.build_event(
            NodeRef(name="node-a", uid="uid-a"), "Normal", "DeletingNode", "Deleting node node-a"
        )

        assert event.metadata.name.startswith("node-a.")
        assert event.metadata.namespace == "default"
        assert event.involved_object.kind == "Node"
        assert event.involved_object.name == "node-a"
        assert event.involved_object.uid == "uid-a"
        assert event.reason == "DeletingNode"
        assert event.type == "Normal"
        assert event.source.component == "cloud-lifecycle-controller"

    @pytest.mark.asyncio
    async def test_record_sends_in_background(self, mock_core_api):
        """Test record returns immediately and flush waits for delivery."""
        from lifecycle_controller.state import NodeRef
        from lifecycle_controller.store import KubernetesEventRecorder

        recorder = KubernetesEventRecorder(mock_core_api)
        recorder.record(NodeRef(name="node-a"), "Normal", "DeletingNode", "msg")
        await recorder.flush()

        mock_core_api.create_namespaced_event.assert_called_once()
        namespace, event = mock_core_api.create_namespaced_event.call_args.args
        assert namespace == "default"
        assert event.message == "msg"

    @pytest.mark.asyncio
    async def test_record_failure_is_logged(self, mock_core_api, caplog):
        """Test delivery failures never reach the caller."""
        from lifecycle_controller.state import NodeRef
        from lifecycle_controller.store import KubernetesEventRecorder

        mock_core_api.create_namespaced_event.side_effect = api_exception(403)
        recorder = KubernetesEventRecorder(mock_core_api)

        recorder.record(NodeRef(name="node-a"), "Normal", "DeletingNode", "msg")
        await recorder.flush()

        assert "Failed to record event" in caplog.text


class TestLoadApiClient:
    """Tests for cluster credential loading."""

    def test_explicit_kubeconfig(self):
        """Test an explicit kubeconfig is loaded directly."""
        from lifecycle_controller.store import load_api_client

        with patch("lifecycle_controller.store.config") as mock_config, \
                patch("lifecycle_controller.store.client.ApiClient"):
            load_api_client("/tmp/kubeconfig")

        mock_config.load_kube_config.assert_called_once_with(config_file="/tmp/kubeconfig")
        mock_config.load_incluster_config.assert_not_called()

    def test_in_cluster_fallback(self):
        """Test the default kubeconfig is used outside a cluster."""
        from kubernetes.config.config_exception import ConfigException
        from lifecycle_controller.store import load_api_client

        with patch("lifecycle_controller.store.config") as mock_config, \
                patch("lifecycle_controller.store.client.ApiClient"):
            mock_config.load_incluster_config.side_effect = ConfigException("not in cluster")
            load_api_client()

        mock_config.load_kube_config.assert_called_once_with()
