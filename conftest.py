"""Pytest configuration shared by the whole test suite."""

import os
import sys

import pytest

# Ensure the notifier package is importable without installing it
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import notifier.notifications  # noqa: E402


@pytest.fixture(autouse=True)
def reset_default_notifier():
    """Drop the process-wide notifier so tests never share configuration."""
    notifier.notifications._notifier = None
    yield
    notifier.notifications._notifier = None
