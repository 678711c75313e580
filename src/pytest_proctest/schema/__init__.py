"""Document, procedure, and result schema.

This package defines the immutable value models exchanged between the
pipeline stages: parse-tree nodes, extract documents, procedures with
their steps, actions and variant slots, procedure instances, and the
execution result tree.
"""

from .execution import CleanupCallback, CleanupRegistrar, ExecutionOutcome, ExecutionRequest
from .extracts import ExtractDocument, ExtractEntry, ExtractReference
from .nodes import DirectiveNode, NodeKind, SourceLocation
from .procedures import (
    Action,
    ActionKind,
    AlternativeKey,
    ContentBlock,
    Dimension,
    Procedure,
    ProcedureInstance,
    Step,
    StepItem,
    VariantAlternative,
    VariantChoice,
    VariantSlot,
)
from .results import (
    ActionResult,
    ActionStatus,
    AggregateStatus,
    InstanceResult,
    InstanceStatus,
    RunResult,
    StepResult,
)

__all__ = (
    'Action',
    'ActionKind',
    'ActionResult',
    'ActionStatus',
    'AggregateStatus',
    'AlternativeKey',
    'CleanupCallback',
    'CleanupRegistrar',
    'ContentBlock',
    'Dimension',
    'DirectiveNode',
    'ExecutionOutcome',
    'ExecutionRequest',
    'ExtractDocument',
    'ExtractEntry',
    'ExtractReference',
    'InstanceResult',
    'InstanceStatus',
    'NodeKind',
    'Procedure',
    'ProcedureInstance',
    'RunResult',
    'SourceLocation',
    'Step',
    'StepItem',
    'StepResult',
    'VariantAlternative',
    'VariantChoice',
    'VariantSlot',
)
