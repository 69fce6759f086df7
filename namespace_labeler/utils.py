"""Utility functions for label handling and error reporting."""

import logging
from typing import Dict, Optional

from .namespace_client import NamespaceClientError

logger = logging.getLogger(__name__)


def get_namespace_labels(namespace) -> Dict[str, str]:
    """
    Extract a copy of the labels from a namespace object.

    Returns:
        Label mapping (empty if the namespace has none)
    """
    try:
        labels = namespace.metadata.labels
    except AttributeError:
        return {}
    return dict(labels or {})


def merge_labels(labels: Optional[Dict[str, str]], key: str, value: str) -> Dict[str, str]:
    """
    Return a new label mapping with key set to value.

    Existing labels are preserved; the input mapping is not modified.
    """
    merged = dict(labels or {})
    merged[key] = value
    return merged


def format_labels(labels: Dict[str, str]) -> str:
    """
    Format labels the way kubectl prints them.

    Examples:
        {"team": "x", "managed-by": "namespace-labeler"} -> "managed-by=namespace-labeler,team=x"
        {} -> "<none>"
    """
    if not labels:
        return "<none>"
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def handle_error(error: BaseException, context: str = "") -> None:
    """
    Report an error that the controller recovered from.

    Every failure that does not stop the process goes through here so that
    nothing is dropped without a log line.
    """
    message = f"{context}: {error}" if context else str(error)

    # Typed client errors are expected; anything else gets a traceback
    if isinstance(error, NamespaceClientError):
        logger.error(message)
    else:
        logger.error(message, exc_info=error)
