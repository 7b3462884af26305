"""
Test Utilities
==============

Common mocks for testing.
"""

from .mocks import *
