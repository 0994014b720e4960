"""
Shared fixtures — sample class test records.
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

SAMPLE_JSON = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_tests.json")
SUBJECTS = ["English", "Hindi", "Maths", "Science"]


@pytest.fixture
def sample_tests():
    """Six dated tests (newest first) plus one record with an unreadable date."""
    with open(SAMPLE_JSON, encoding="utf-8") as fh:
        return json.load(fh)


@pytest.fixture
def subjects():
    return list(SUBJECTS)
