"""Integration test package.

These tests write extraction sheets to a temporary directory, then
draw figures and drive the CLI end to end.  Run only them with
``pytest -m integration``.
"""
