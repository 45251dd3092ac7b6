"""Capital resolution, transfers and the execution saga."""

from crossarb.execution.auto import AutoExecutionConfig, AutoExecutor, in_funding_window
from crossarb.execution.balance import BalanceResolver, CapitalAssessment
from crossarb.execution.locks import CapitalLockRegistry
from crossarb.execution.orchestrator import ArbitrageOrchestrator, OrchestratorConfig
from crossarb.execution.saga import SagaEvent, SagaState, SagaTrace, transition
from crossarb.execution.transfer import TransferConfig, TransferCoordinator, is_confirmed


__all__ = [
    "ArbitrageOrchestrator",
    "AutoExecutionConfig",
    "AutoExecutor",
    "BalanceResolver",
    "CapitalAssessment",
    "CapitalLockRegistry",
    "OrchestratorConfig",
    "SagaEvent",
    "SagaState",
    "SagaTrace",
    "TransferConfig",
    "TransferCoordinator",
    "in_funding_window",
    "is_confirmed",
    "transition",
]
