"""
Pytest fixtures for kafka_tail tests.

Test doubles live in tests/kafka_tail/fakes.py.
"""

import io

import pytest


@pytest.fixture
def diagnostics_stream() -> io.StringIO:
    """Text stream standing in for stderr."""
    return io.StringIO()


@pytest.fixture
def payload_stream() -> io.BytesIO:
    """Binary stream standing in for stdout."""
    return io.BytesIO()
