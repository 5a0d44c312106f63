"""Test helpers shared across the test suite."""
