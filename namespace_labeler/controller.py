"""Main controller logic for Namespace Labeler."""

import logging
import queue
import threading
from typing import List, Optional

from .config import (
    CACHE_SYNC_TIMEOUT_SECONDS,
    DEFAULT_WORKERS,
    EVENT_POLL_INTERVAL_SECONDS,
)
from .namespace_client import AccessDenied, NamespaceClient, NamespaceClientError
from .reconciler import LabelAssertion, NamespaceReconciler
from .resource_cache import DELETED, NamespaceWatcher, ResourceCache, ResourceEvent
from .utils import handle_error
from .workqueue import RateLimiter, RateLimitingQueue

logger = logging.getLogger(__name__)


class NamespaceLabelController:
    """
    Controller that keeps a label on every namespace.

    A watcher thread mirrors namespaces into a local cache and sends change
    events to a dispatcher thread, which queues namespace names. Worker
    threads take names from the queue and reconcile them against the cache.
    """

    def __init__(
        self,
        namespace_client: Optional[NamespaceClient] = None,
        assertion: Optional[LabelAssertion] = None,
        dry_run: bool = False,
        workers: int = DEFAULT_WORKERS,
        rate_limiter: Optional[RateLimiter] = None,
        sync_timeout: float = CACHE_SYNC_TIMEOUT_SECONDS,
    ):
        """
        Initialize the controller.

        Args:
            namespace_client: Client for the namespace API
            assertion: Label to enforce on every namespace
            dry_run: If True, don't make actual changes
            workers: Number of concurrent worker threads
            rate_limiter: Retry backoff policy for failed namespaces
            sync_timeout: Seconds to wait for the initial namespace list
        """
        self.client = namespace_client or NamespaceClient()
        self.dry_run = dry_run
        self.workers = workers
        self.sync_timeout = sync_timeout

        self.cache = ResourceCache()
        self.events: "queue.Queue[ResourceEvent]" = queue.Queue()
        self.watcher = NamespaceWatcher(self.client, cache=self.cache, events=self.events)
        self.queue = RateLimitingQueue(rate_limiter)
        self.reconciler = NamespaceReconciler(self.client, assertion=assertion, dry_run=dry_run)

        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    def handle_event(self, event: ResourceEvent) -> None:
        """
        Turn a cache change into queued work.

        Args:
            event: Change sent by the watcher
        """
        name = event.resource.name

        if event.event_type == DELETED:
            logger.debug(f"Namespace {name} deleted, nothing to do")
            return

        self.queue.add(name)

    def dispatch_events(self) -> None:
        """Forward watcher events to the work queue until stopped."""
        while not self._stop_event.is_set():
            try:
                event = self.events.get(timeout=EVENT_POLL_INTERVAL_SECONDS)
            except queue.Empty:
                continue
            self.handle_event(event)

    def sync_namespace(self, name: str) -> None:
        """
        Reconcile one namespace using its cached state.

        Raises:
            NamespaceClientError: If the label update fails
        """
        resource = self.cache.get(name)
        if resource is None:
            logger.debug(f"Namespace {name} is no longer in the cache, skipping")
            return

        self.reconciler.reconcile(resource)

    def process_next_item(self) -> bool:
        """
        Take one namespace from the queue and reconcile it.

        Returns:
            False once the queue has shut down, True otherwise
        """
        name, shutdown = self.queue.get()
        if shutdown:
            return False

        try:
            self.sync_namespace(name)
        except AccessDenied as e:
            handle_error(e, f"Not retrying namespace {name}")
            self.queue.forget(name)
        except NamespaceClientError as e:
            handle_error(e, f"Error syncing namespace {name}")
            self.queue.add_rate_limited(name)
        except Exception as e:
            handle_error(e, f"Unexpected error syncing namespace {name}")
            self.queue.add_rate_limited(name)
        else:
            self.queue.forget(name)
        finally:
            self.queue.done(name)

        return True

    def run_worker(self) -> None:
        """Process queue items until the queue shuts down."""
        while self.process_next_item():
            pass

    def wait_for_cache_sync(self) -> bool:
        return self.watcher.wait_for_sync(self._stop_event, self.sync_timeout)

    def _start_thread(self, target, name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)
        return thread

    def run(self, workers: Optional[int] = None) -> bool:
        """
        Run the controller until stop() is called.

        Args:
            workers: Override the number of worker threads

        Returns:
            False if the cache never synced, True after a clean shutdown
        """
        workers = workers or self.workers

        logger.info("Starting Namespace Label Controller")
        logger.info(f"Label: {self.reconciler.assertion}")
        logger.info(f"Dry run: {self.dry_run}")

        self.watcher.start()
        self._start_thread(self.dispatch_events, "event-dispatcher")

        try:
            if not self.wait_for_cache_sync():
                if self._stop_event.is_set():
                    logger.info("Stopped before namespace cache synced")
                elif self.watcher.error is not None:
                    handle_error(self.watcher.error, "Namespace cache failed to sync")
                else:
                    handle_error(RuntimeError("timed out waiting for caches to sync"))
                return False

            logger.info(f"Namespace cache synced with {len(self.cache)} namespaces")

            for i in range(workers):
                self._start_thread(self.run_worker, f"worker-{i}")

            logger.info(f"Controller is running with {workers} worker(s)")

            while not self._stop_event.wait(1):
                pass

            return True
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        logger.info("Shutting down controller...")
        self._stop_event.set()
        self.watcher.stop()
        self.queue.shut_down()

        # Workers finish the reconciliation they are in before exiting
        for thread in self._threads:
            thread.join()
        self._threads.clear()
        self.watcher.join(timeout=1)

        logger.info("Controller stopped")

    def stop(self) -> None:
        """Stop the controller."""
        logger.info("Stopping controller...")
        self._stop_event.set()
