"""Unit tests for namespace_client.py - Namespace API client."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from namespace_labeler.namespace_client import (
    AccessDenied,
    NamespaceClient,
    NamespaceNotFound,
    TransientError,
    VersionConflict,
    classify_api_error,
)


@pytest.fixture
def core_api():
    return MagicMock()


@pytest.fixture
def namespace_client(core_api):
    return NamespaceClient(core_api=core_api)


class TestClassifyApiError:
    """Tests for ApiException translation."""

    @pytest.mark.parametrize("status,expected,retryable", [
        (404, NamespaceNotFound, True),
        (409, VersionConflict, True),
        (401, AccessDenied, False),
        (403, AccessDenied, False),
        (410, TransientError, True),
        (500, TransientError, True),
        (None, TransientError, True),
    ])
    def test_status_mapping(self, status, expected, retryable):
        """Test each status code maps to the right error type."""
        error = classify_api_error(ApiException(status=status, reason="Boom"), "Update namespace")
        assert type(error) is expected
        assert error.status == status
        assert error.retryable is retryable
        assert "Update namespace failed" in str(error)


class TestNamespaceClient:
    """Tests for NamespaceClient."""

    def test_list_namespaces(self, namespace_client, core_api, make_namespace):
        """Test listing returns items and the list resource version."""
        items = [make_namespace("ns-a"), make_namespace("ns-b")]
        core_api.list_namespace.return_value = MagicMock(
            items=items, metadata=MagicMock(resource_version="42")
        )

        namespaces, resource_version = namespace_client.list_namespaces()

        assert namespaces == items
        assert resource_version == "42"

    def test_list_namespaces_api_error(self, namespace_client, core_api):
        """Test list failures are translated."""
        core_api.list_namespace.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(AccessDenied):
            namespace_client.list_namespaces()

    def test_list_namespaces_network_error(self, namespace_client, core_api):
        """Test connection errors become TransientError."""
        core_api.list_namespace.side_effect = ConnectionError("refused")

        with pytest.raises(TransientError):
            namespace_client.list_namespaces()

    def test_update_labels_sends_version(self, namespace_client, core_api):
        """Test the patch body carries labels and resourceVersion."""
        namespace_client.update_labels("ns-b", {"team": "x", "managed-by": "namespace-labeler"}, "9")

        core_api.patch_namespace.assert_called_once_with(
            name="ns-b",
            body={
                "metadata": {
                    "labels": {"team": "x", "managed-by": "namespace-labeler"},
                    "resourceVersion": "9",
                }
            },
        )

    def test_update_labels_conflict(self, namespace_client, core_api):
        """Test a 409 becomes VersionConflict."""
        core_api.patch_namespace.side_effect = ApiException(status=409, reason="Conflict")

        with pytest.raises(VersionConflict):
            namespace_client.update_labels("ns-a", {"managed-by": "namespace-labeler"}, "1")

    def test_watch_namespaces(self, namespace_client, core_api, make_namespace):
        """Test watch events are passed through from the resource version."""
        event = {"type": "ADDED", "object": make_namespace("ns-a")}

        with patch("namespace_labeler.namespace_client.watch.Watch") as watch_cls:
            watcher = watch_cls.return_value
            watcher.stream.return_value = iter([event])

            events = list(namespace_client.watch_namespaces(resource_version="5", timeout=10))

        assert events == [event]
        watcher.stream.assert_called_once_with(
            core_api.list_namespace, timeout_seconds=10, resource_version="5"
        )
        watcher.stop.assert_called()

    def test_watch_expired_resource_version(self, namespace_client):
        """Test a 410 from the stream surfaces with its status."""
        with patch("namespace_labeler.namespace_client.watch.Watch") as watch_cls:
            watch_cls.return_value.stream.side_effect = ApiException(status=410, reason="Gone")

            with pytest.raises(TransientError) as exc_info:
                list(namespace_client.watch_namespaces(resource_version="5"))

        assert exc_info.value.status == 410

    def test_stop_watch_interrupts_active_stream(self, namespace_client):
        """Test stop_watch() stops the open watch."""
        with patch("namespace_labeler.namespace_client.watch.Watch") as watch_cls:
            watcher = watch_cls.return_value
            watcher.stream.return_value = iter([{"type": "ADDED", "object": None}])

            stream = namespace_client.watch_namespaces()
            next(stream)
            namespace_client.stop_watch()
            watcher.stop.assert_called_once()
            stream.close()

    def test_stop_watch_without_stream(self, namespace_client):
        """Test stop_watch() is a no-op when nothing is open."""
        namespace_client.stop_watch()
