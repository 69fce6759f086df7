"""Reconciliation logic for Namespace Labeler."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .config import MANAGED_BY_LABEL_KEY, MANAGED_BY_LABEL_VALUE
from .namespace_client import NamespaceClient
from .resource_cache import WatchedResource
from .utils import format_labels, merge_labels

logger = logging.getLogger(__name__)

COMPLIANT = "compliant"
UPDATED = "updated"
DRY_RUN = "dry-run"


@dataclass(frozen=True)
class LabelAssertion:
    """A label that every namespace must carry."""
    key: str = MANAGED_BY_LABEL_KEY
    value: str = MANAGED_BY_LABEL_VALUE

    def is_satisfied_by(self, labels: Optional[Dict[str, str]]) -> bool:
        return (labels or {}).get(self.key) == self.value

    def apply(self, labels: Optional[Dict[str, str]]) -> Dict[str, str]:
        return merge_labels(labels, self.key, self.value)

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


class NamespaceReconciler:
    """Ensures a namespace carries the asserted label."""

    def __init__(
        self,
        namespace_client: NamespaceClient,
        assertion: Optional[LabelAssertion] = None,
        dry_run: bool = False,
    ):
        """
        Initialize the reconciler.

        Args:
            namespace_client: Client used to write labels
            assertion: Label to enforce (managed-by=namespace-labeler by default)
            dry_run: If True, don't make actual changes
        """
        self.client = namespace_client
        self.assertion = assertion or LabelAssertion()
        self.dry_run = dry_run

    def needs_reconciliation(self, resource: WatchedResource) -> bool:
        return not self.assertion.is_satisfied_by(resource.labels)

    def reconcile(self, resource: WatchedResource) -> str:
        """
        Bring one namespace in line with the label assertion.

        Works from the cached snapshot and makes at most one API call. The
        snapshot itself is left untouched; the cache picks up the new labels
        from the watch event caused by our own write.

        Args:
            resource: Cached state of the namespace

        Returns:
            "compliant", "updated" or "dry-run"

        Raises:
            NamespaceClientError: If the update call fails
        """
        if not self.needs_reconciliation(resource):
            logger.debug(f"Namespace {resource.name} already has {self.assertion}")
            return COMPLIANT

        labels = self.assertion.apply(resource.labels)

        if self.dry_run:
            logger.info(f"[DRY-RUN] Would label namespace {resource.name}: {format_labels(labels)}")
            return DRY_RUN

        self.client.update_labels(resource.name, labels, resource.resource_version)
        logger.info(f"Labelled namespace {resource.name} with {self.assertion}")
        return UPDATED
