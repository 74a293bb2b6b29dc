"""
REST API step definitions for Behave BDD testing.

The phrases live in scenario.api_steps as parse expressions; this module
registers each of them with behave's default parse matcher, together with
the Int and Quoted field types, so both runners share one definition of
every step.
"""
from behave import given, when, then, step, register_type
import functools
import sys
from pathlib import Path

# Get project root (go up 3 levels: steps -> features -> project_root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root.absolute()))

from scenario.api_steps import registry
from scenario.step_registry import PARAMETER_TYPES, StepDefinition
from utils.logger import logger

DECORATORS = {'given': given, 'when': when, 'then': then, 'step': step}


def table_rows(table):
    """behave Table -> list of cell rows, header row excluded."""
    if table is None:
        return None
    return [list(row.cells) for row in table.rows]


def bind(definition: StepDefinition):
    """Adapt a handler to behave's calling convention; behave reports the handler's location."""
    @functools.wraps(definition.func)
    def run_step(context, *args, **kwargs):
        scenario_ctx = context.scenario_ctx
        definition.invoke(
            scenario_ctx,
            args,
            kwargs,
            table=table_rows(context.table),
            text=context.text,
            timeout=scenario_ctx.step_timeout
        )

    return run_step


register_type(**PARAMETER_TYPES)
for definition in registry.definitions:
    DECORATORS[definition.keyword](definition.template)(bind(definition))

logger.debug(f"Registered {len(registry)} API steps with behave")
