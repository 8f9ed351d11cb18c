# tests/conftest.py
import os
import sys
import threading

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class FakeSocket:
    """Records sendto() calls instead of touching the network."""

    def __init__(self, fail_with=None):
        self.sent = []
        self.fail_with = fail_with
        self._lock = threading.Lock()

    def sendto(self, data, addr):
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.sent.append((bytes(data), addr))
        return len(data)


@pytest.fixture
def fake_sock():
    return FakeSocket()


@pytest.fixture
def addr():
    return ("127.0.0.1", 40000)


@pytest.fixture
def failing_sock():
    return FakeSocket(fail_with=OSError("network is unreachable"))
