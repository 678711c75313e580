"""Pytest plugin testing documented procedures.

The `pytest_proctest` package treats technical documentation written in
a reStructuredText-like directive dialect as executable tests: it
recovers step-by-step procedures from the markup and runs their code,
shell, CLI and URL actions.

Key features:
- directive parsing with includes, literal includes and extract files;
- procedure, step and action recovery with content-sniffing classification;
- expansion of tab sets and composable tutorials into variant-free instances;
- placeholder resolution from environment files and source constants;
- sequential execution through pluggable executors with cleanup handling.

Procedures are collected as pytest items with `--proctest`, or run
from the `proctest` command line.
"""
