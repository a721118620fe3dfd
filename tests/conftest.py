"""Pytest configuration for all tests."""

import os
import sys

# Repository root for the api package, tests directory for the shared fakes
tests_dir = os.path.abspath(os.path.dirname(__file__))
root_dir = os.path.abspath(os.path.join(tests_dir, '..'))
for path in (root_dir, tests_dir):
    if path not in sys.path:
        sys.path.insert(0, path)
