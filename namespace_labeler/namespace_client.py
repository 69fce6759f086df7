"""Client for listing, watching and labelling Namespaces."""

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .config import WATCH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class NamespaceClientError(Exception):
    """Base error for failed namespace API calls."""

    retryable = True

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NamespaceNotFound(NamespaceClientError):
    """The namespace no longer exists."""


class VersionConflict(NamespaceClientError):
    """The namespace changed since the resource version we hold."""


class AccessDenied(NamespaceClientError):
    """The API server refused the request (RBAC or authentication)."""

    retryable = False


class TransientError(NamespaceClientError):
    """Network failure or server-side error worth retrying."""


def classify_api_error(error: ApiException, action: str) -> NamespaceClientError:
    """
    Translate an ApiException into a NamespaceClientError.

    Args:
        error: The exception raised by the Kubernetes client
        action: Short description of the failed call, used in the message

    Returns:
        The matching NamespaceClientError subclass instance
    """
    status = error.status
    message = f"{action} failed: {status} {error.reason}"

    if status == 404:
        return NamespaceNotFound(message, status)
    if status == 409:
        return VersionConflict(message, status)
    if status in (401, 403):
        return AccessDenied(message, status)
    return TransientError(message, status)


class NamespaceClient:
    """Client for cluster-scoped Namespace objects."""

    def __init__(self, core_api: Optional[client.CoreV1Api] = None):
        """
        Initialize the namespace client.

        Args:
            core_api: CoreV1Api to use (a new one is created if omitted)
        """
        self.v1 = core_api or client.CoreV1Api()
        self._watcher_lock = threading.Lock()
        self._active_watch: Optional[watch.Watch] = None

    def list_namespaces(self) -> Tuple[List[Any], Optional[str]]:
        """
        List all namespaces.

        Returns:
            Tuple of (namespace objects, list resource version)

        Raises:
            NamespaceClientError: If the list call fails
        """
        try:
            response = self.v1.list_namespace()
        except ApiException as e:
            raise classify_api_error(e, "List namespaces") from e
        except Exception as e:
            raise TransientError(f"List namespaces failed: {e}") from e

        resource_version = getattr(response.metadata, "resource_version", None)
        return list(response.items or []), resource_version

    def watch_namespaces(
        self,
        resource_version: Optional[str] = None,
        timeout: int = WATCH_TIMEOUT_SECONDS,
    ) -> Iterator[Dict[str, Any]]:
        """
        Create a watch stream for Namespace objects.

        Args:
            resource_version: Resume the watch after this version
            timeout: Server-side watch timeout in seconds

        Yields:
            Watch events with "type" and "object" keys

        Raises:
            NamespaceClientError: If the stream fails. An expired resource
                version surfaces as a TransientError with status 410.
        """
        w = watch.Watch()
        with self._watcher_lock:
            self._active_watch = w

        kwargs: Dict[str, Any] = {"timeout_seconds": timeout}
        if resource_version:
            kwargs["resource_version"] = resource_version

        try:
            for event in w.stream(self.v1.list_namespace, **kwargs):
                yield event
        except ApiException as e:
            raise classify_api_error(e, "Watch namespaces") from e
        except NamespaceClientError:
            raise
        except Exception as e:
            raise TransientError(f"Watch namespaces failed: {e}") from e
        finally:
            w.stop()
            with self._watcher_lock:
                if self._active_watch is w:
                    self._active_watch = None

    def stop_watch(self) -> None:
        """Interrupt the currently open watch stream, if any."""
        with self._watcher_lock:
            active = self._active_watch
        if active is not None:
            active.stop()

    def update_labels(
        self,
        name: str,
        labels: Dict[str, str],
        resource_version: Optional[str],
    ) -> Any:
        """
        Write the label mapping of a namespace.

        The patch carries the resource version we read, so the API server
        rejects it with 409 if the namespace changed in the meantime.

        Args:
            name: Namespace name
            labels: Complete label mapping to write
            resource_version: Version token the labels were computed from

        Returns:
            The updated namespace object

        Raises:
            NamespaceClientError: If the update fails
        """
        metadata: Dict[str, Any] = {"labels": labels}
        if resource_version:
            metadata["resourceVersion"] = resource_version

        try:
            return self.v1.patch_namespace(name=name, body={"metadata": metadata})
        except ApiException as e:
            raise classify_api_error(e, f"Update namespace {name}") from e
        except Exception as e:
            raise TransientError(f"Update namespace {name} failed: {e}") from e
