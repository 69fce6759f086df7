"""Shared test helpers."""

import threading

import pytest


def get_with_timeout(work_queue, timeout=2.0):
    """Call work_queue.get() on a helper thread so a broken queue can't hang the suite."""
    result = {}

    def _get():
        result["value"] = work_queue.get()

    thread = threading.Thread(target=_get, daemon=True)
    thread.start()
    thread.join(timeout)
    if thread.is_alive():
        pytest.fail(f"get() did not return within {timeout}s")
    return result["value"]
