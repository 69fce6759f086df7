"""Pytest configuration and fixtures."""

from unittest.mock import MagicMock

import pytest
from kubernetes import client

from namespace_labeler.namespace_client import NamespaceClient


@pytest.fixture
def make_namespace():
    """Factory for V1Namespace objects."""
    def _make(name, labels=None, resource_version="1"):
        return client.V1Namespace(
            metadata=client.V1ObjectMeta(
                name=name,
                labels=labels,
                resource_version=resource_version,
            )
        )
    return _make


@pytest.fixture
def mock_client():
    """Create a mock NamespaceClient."""
    namespace_client = MagicMock(spec=NamespaceClient)
    namespace_client.list_namespaces.return_value = ([], "1")
    namespace_client.update_labels.return_value = None
    return namespace_client
