"""Shared fixtures for runpipe tests."""

import os
from contextlib import contextmanager

import pytest


@pytest.fixture
def close_fd():
    """Context manager closing a descriptor for its duration, like ``<&-``.

    Descriptors opened before entering keep their numbers, so the closed
    slot is the lowest free one while the block runs.
    """
    @contextmanager
    def closer(fd):
        saved = os.dup(fd)
        os.close(fd)
        try:
            yield
        finally:
            os.dup2(saved, fd)
            os.close(saved)

    return closer


@pytest.fixture(params=["fork", "spawn"])
def launcher_name(request):
    return request.param
