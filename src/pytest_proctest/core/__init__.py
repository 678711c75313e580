"""Core documentation testing pipeline.

This package defines the pipeline stages that turn documentation into
executed procedures:

- parsing of the directive markup dialect and transclusions;
- recovery of procedures, steps, actions and variant slots;
- expansion of variants into procedure instances;
- classification of actions and resolution of placeholders;
- sequential execution through pluggable executors.

The primary public entry points are `DocumentParser`, which turns files
into procedures, and `Orchestrator`, which runs procedure instances.
"""

from .orchestrator import Orchestrator
from .parser import DocumentParser, Errors, Procedures, Source

__all__ = (
    'DocumentParser',
    'Errors',
    'Orchestrator',
    'Procedures',
    'Source',
)
