"""Test package helpers shared across policyscan suites."""
