"""
Scenario state, phrase dispatch and programmatic execution.
"""
from .variable_store import VariableStore
from .context import ScenarioContext
from .step_registry import StepRegistry
from .runner import ScenarioRunner

__all__ = [
    'VariableStore',
    'ScenarioContext',
    'StepRegistry',
    'ScenarioRunner'
]
