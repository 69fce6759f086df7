"""In-memory cache of Namespaces kept in sync by a list-then-watch loop."""

import logging
import queue
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import (
    CACHE_SYNC_POLL_SECONDS,
    WATCH_RETRY_BASE_SECONDS,
    WATCH_RETRY_MAX_SECONDS,
    WATCH_TIMEOUT_SECONDS,
)
from .namespace_client import AccessDenied, NamespaceClient, NamespaceClientError
from .utils import get_namespace_labels

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


@dataclass
class WatchedResource:
    """Latest known state of one namespace."""
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    resource_version: Optional[str] = None

    @classmethod
    def from_namespace(cls, namespace) -> "WatchedResource":
        """Create WatchedResource from a V1Namespace."""
        metadata = namespace.metadata
        return cls(
            name=metadata.name,
            labels=get_namespace_labels(namespace),
            resource_version=metadata.resource_version,
        )


@dataclass
class ResourceEvent:
    """A change notification sent from the watcher to the controller."""
    event_type: str
    resource: WatchedResource
    old_resource: Optional[WatchedResource] = None


class ResourceCache:
    """Thread-safe cache of WatchedResource objects keyed by name."""

    def __init__(self):
        self._resources: Dict[str, WatchedResource] = {}
        self._lock = threading.RLock()

    def add_or_update(self, resource: WatchedResource) -> Optional[WatchedResource]:
        """
        Store the latest state of a resource.

        Returns:
            The previously cached state, or None if the name was new
        """
        with self._lock:
            old = self._resources.get(resource.name)
            self._resources[resource.name] = resource
            return old

    def remove(self, name: str) -> Optional[WatchedResource]:
        """Remove a resource, returning the cached state if there was one."""
        with self._lock:
            return self._resources.pop(name, None)

    def get(self, name: str) -> Optional[WatchedResource]:
        with self._lock:
            return self._resources.get(name)

    def list_names(self) -> List[str]:
        with self._lock:
            return sorted(self._resources)

    def replace(self, resources: List[WatchedResource]) -> List[ResourceEvent]:
        """
        Replace the whole cache content with a fresh list.

        Returns:
            Events describing the difference from the previous content
        """
        events = []
        with self._lock:
            previous = self._resources
            self._resources = {r.name: r for r in resources}

            for resource in resources:
                old = previous.get(resource.name)
                if old is None:
                    events.append(ResourceEvent(ADDED, resource))
                else:
                    events.append(ResourceEvent(MODIFIED, resource, old))

            for name, old in previous.items():
                if name not in self._resources:
                    events.append(ResourceEvent(DELETED, old))

        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)


class NamespaceWatcher:
    """
    Mirrors the cluster's namespaces into a ResourceCache.

    Performs an initial list, then watches from the list's resource version.
    Every change is applied to the cache first and then sent as a
    ResourceEvent on the events channel.
    """

    def __init__(
        self,
        namespace_client: NamespaceClient,
        cache: Optional[ResourceCache] = None,
        events: Optional["queue.Queue[ResourceEvent]"] = None,
        watch_timeout: int = WATCH_TIMEOUT_SECONDS,
        retry_base: float = WATCH_RETRY_BASE_SECONDS,
        retry_max: float = WATCH_RETRY_MAX_SECONDS,
    ):
        """
        Initialize the watcher.

        Args:
            namespace_client: Client used for list and watch calls
            cache: Cache to populate (a new one is created if omitted)
            events: Channel receiving ResourceEvent messages
            watch_timeout: Server-side timeout for each watch request
            retry_base: First delay after a failed list or watch
            retry_max: Upper bound for the retry delay
        """
        self.client = namespace_client
        self.cache = cache if cache is not None else ResourceCache()
        self.events = events if events is not None else queue.Queue()
        self.watch_timeout = watch_timeout
        self.retry_base = retry_base
        self.retry_max = retry_max

        self.error: Optional[NamespaceClientError] = None
        self._resource_version: Optional[str] = None
        self._synced = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def has_synced(self) -> bool:
        """True once the initial list has been stored in the cache."""
        return self._synced.is_set()

    def start(self) -> threading.Thread:
        """Run the list-then-watch loop on a background thread."""
        self._thread = threading.Thread(
            target=self.run,
            name="namespace-watcher",
            daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Stop the watch loop and interrupt the open stream."""
        self._stop_event.set()
        self.client.stop_watch()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def wait_for_sync(
        self,
        stop_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Block until the cache holds the initial list.

        Args:
            stop_event: Abort waiting when this event is set
            timeout: Give up after this many seconds (None waits forever)

        Returns:
            True if the cache synced, False on stop, timeout or watcher failure
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while not self._synced.wait(CACHE_SYNC_POLL_SECONDS):
            if stop_event is not None and stop_event.is_set():
                return False
            if self.error is not None or self._stop_event.is_set():
                return False
            if deadline is not None and time.monotonic() >= deadline:
                return False

        return True

    def _emit(self, event: ResourceEvent) -> None:
        self.events.put(event)

    def relist(self) -> None:
        """
        List all namespaces and replace the cache content.

        Raises:
            NamespaceClientError: If the list call fails
        """
        namespaces, resource_version = self.client.list_namespaces()
        resources = [WatchedResource.from_namespace(ns) for ns in namespaces]

        for event in self.cache.replace(resources):
            self._emit(event)

        self._resource_version = resource_version
        logger.info(f"Listed {len(resources)} namespaces at resourceVersion {resource_version}")

    def handle_event(self, event: Dict[str, Any]) -> None:
        """
        Apply one watch event to the cache and forward it.

        Args:
            event: Watch event with "type" and "object" keys
        """
        event_type = event.get("type")
        obj = event.get("object")

        if event_type not in (ADDED, MODIFIED, DELETED) or obj is None:
            logger.debug(f"Ignoring watch event of type {event_type}")
            return

        resource = WatchedResource.from_namespace(obj)
        if resource.resource_version:
            self._resource_version = resource.resource_version

        if event_type == DELETED:
            old = self.cache.remove(resource.name)
            self._emit(ResourceEvent(DELETED, old or resource))
            return

        old = self.cache.add_or_update(resource)
        self._emit(ResourceEvent(ADDED if old is None else MODIFIED, resource, old))

    def _backoff(self, delay: float) -> float:
        """Sleep for a jittered delay and return the next delay."""
        self._stop_event.wait(delay * (0.5 + random.random()))
        return min(delay * 2, self.retry_max)

    def _fail(self, error: AccessDenied) -> None:
        logger.error(
            f"Namespace API access denied ({error}). "
            "Check controller RBAC and service account permissions."
        )
        self.error = error
        self._stop_event.set()

    def run(self) -> None:
        """List-then-watch loop; returns when stopped or access is denied."""
        delay = self.retry_base
        while not self._stop_event.is_set():
            try:
                self.relist()
                self._synced.set()
                break
            except AccessDenied as e:
                self._fail(e)
                return
            except NamespaceClientError as e:
                logger.error(f"Initial namespace list failed: {e}")
                delay = self._backoff(delay)
            except Exception:
                logger.exception("Unexpected error during initial namespace list")
                delay = self._backoff(delay)

        delay = self.retry_base
        while not self._stop_event.is_set():
            try:
                logger.debug(f"Starting namespace watch from resourceVersion {self._resource_version}")
                for event in self.client.watch_namespaces(
                    resource_version=self._resource_version,
                    timeout=self.watch_timeout
                ):
                    if self._stop_event.is_set():
                        break
                    self.handle_event(event)
                delay = self.retry_base

            except AccessDenied as e:
                self._fail(e)
                return
            except NamespaceClientError as e:
                if e.status == 410:
                    logger.warning("Watch resource version expired, re-listing")
                    self._resource_version = None
                    try:
                        self.relist()
                        continue
                    except AccessDenied as relist_error:
                        self._fail(relist_error)
                        return
                    except NamespaceClientError as relist_error:
                        logger.error(f"Re-list after expired watch failed: {relist_error}")
                else:
                    logger.error(f"Namespace watch error: {e}")
                delay = self._backoff(delay)
            except Exception:
                logger.exception("Unexpected error in namespace watcher")
                delay = self._backoff(delay)

        logger.info("Namespace watcher stopped")
