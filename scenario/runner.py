"""
Programmatic scenario execution.

Runs an ordered list of phrases against a StepRegistry with a fresh
ScenarioContext. The first failing phrase ends the scenario; the remaining
phrases are reported as skipped.

    runner = ScenarioRunner(registry, config_loader.get_api_config())
    result = runner.run("read a post", [
        'When I send a GET request to "/posts/1"',
        'Then the response status code should be 200',
    ])
    assert result.passed
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from scenario.context import ScenarioContext
from scenario.step_registry import StepRegistry
from utils.config_loader import ApiConfig
from utils.custom_exceptions import UndefinedStepError
from utils.logger import log_test_result, log_test_step, test_logger


KEYWORDS = ('Given', 'When', 'Then', 'And', 'But', '*')


@dataclass(frozen=True)
class Phrase:
    """One step line, optionally followed by a data table (header row excluded) or docstring."""
    text: str
    keyword: str = '*'
    table: Optional[List[List[str]]] = None
    docstring: Optional[str] = None

    @classmethod
    def parse(cls, line: str, table: Optional[List[List[str]]] = None,
              docstring: Optional[str] = None) -> 'Phrase':
        """Split a leading Given/When/Then/And/But keyword off the text."""
        stripped = line.strip()
        head, _, rest = stripped.partition(' ')
        if head in KEYWORDS and rest:
            return cls(rest.strip(), head, table, docstring)
        return cls(stripped, '*', table, docstring)


class StepStatus(str, Enum):
    PASSED = 'passed'
    FAILED = 'failed'
    ERROR = 'error'
    UNDEFINED = 'undefined'
    SKIPPED = 'skipped'


@dataclass(frozen=True)
class StepResult:
    phrase: Phrase
    status: StepStatus
    duration_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class ScenarioResult:
    name: str
    steps: List[StepResult] = field(default_factory=list)

    @property
    def status(self) -> StepStatus:
        for step in self.steps:
            if step.status not in (StepStatus.PASSED, StepStatus.SKIPPED):
                return step.status
        return StepStatus.PASSED

    @property
    def passed(self) -> bool:
        return self.status == StepStatus.PASSED

    @property
    def failure(self) -> Optional[StepResult]:
        return next((step for step in self.steps if step.error is not None), None)


def classify(error: BaseException) -> StepStatus:
    """Assertion mismatches fail a step; anything else is an error."""
    if isinstance(error, UndefinedStepError):
        return StepStatus.UNDEFINED
    if isinstance(error, AssertionError):
        return StepStatus.FAILED
    return StepStatus.ERROR


class ScenarioRunner:
    """Fail-fast, strictly sequential execution of phrases."""

    def __init__(self, registry: StepRegistry, api_config: ApiConfig,
                 client_factory: Optional[Callable[[ApiConfig], Any]] = None):
        self.registry = registry
        self.api_config = api_config
        self.client_factory = client_factory

    def run(self, name: str, phrases: Sequence[Union[str, Phrase]]) -> ScenarioResult:
        result = ScenarioResult(name)
        phrases = [p if isinstance(p, Phrase) else Phrase.parse(p) for p in phrases]
        context = ScenarioContext.create(self.api_config, self.client_factory)
        test_logger.info(f"Starting scenario: {name}")
        try:
            for index, phrase in enumerate(phrases):
                log_test_step(phrase.text, keyword=phrase.keyword)
                start = time.perf_counter()
                try:
                    bound = self.registry.match(phrase.text)
                    bound.invoke(context, table=phrase.table, text=phrase.docstring,
                                 timeout=context.step_timeout)
                except Exception as e:
                    duration_ms = (time.perf_counter() - start) * 1000
                    status = classify(e)
                    test_logger.error(f"Step {status.value}: {phrase.text} - {e}")
                    result.steps.append(StepResult(phrase, status, duration_ms, str(e)))
                    result.steps.extend(StepResult(p, StepStatus.SKIPPED) for p in phrases[index + 1:])
                    break
                duration_ms = (time.perf_counter() - start) * 1000
                result.steps.append(StepResult(phrase, StepStatus.PASSED, duration_ms))
        finally:
            context.close()

        log_test_result(name, result.status.value)
        return result

    def run_all(self, scenarios: Mapping[str, Sequence[Union[str, Phrase]]]) -> List[ScenarioResult]:
        """Run independent scenarios one after another, each with its own context."""
        return [self.run(name, phrases) for name, phrases in scenarios.items()]
