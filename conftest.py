"""Pytest configuration for jobmail tests."""

# Ensure project root is on sys.path for imports during pytest collection
import os
import sys

ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Tests log to the console only.
os.environ.setdefault("JOBMAIL_NO_LOG_FILE", "1")
