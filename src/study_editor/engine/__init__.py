"""The modification engine: validation, mutation, orchestration and recovery."""

from study_editor.engine.dependencies import DependencyGraph
from study_editor.engine.mutator import apply_operation
from study_editor.engine.orchestrator import ModificationService
from study_editor.engine.recovery import (
    ErrorKind,
    RecoveryContext,
    RecoveryHandler,
    RecoveryResult,
    RecoveryStrategy,
    StrategyType,
)
from study_editor.engine.validator import OperationValidator

__all__ = [
    "DependencyGraph",
    "ErrorKind",
    "ModificationService",
    "OperationValidator",
    "RecoveryContext",
    "RecoveryHandler",
    "RecoveryResult",
    "RecoveryStrategy",
    "StrategyType",
    "apply_operation",
]
