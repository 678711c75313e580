"""Test suite for the pytest-proctest package.

This package contains unit and integration tests validating
markup parsing, transclusion, procedure recovery, variant expansion,
action classification, placeholder resolution, execution semantics
and pytest integration of documented procedures.
"""
