"""
Phrase templates -> step handlers.

Templates are parse expressions, the same syntax behave's default step
matcher reads, with two custom field types:

    {name:Int}     signed integer, passed as int
    "{name:Quoted}" double-quoted text, passed without the quotes

Named fields are passed to the handler as keyword arguments. Matching
ignores the Given/When/Then keyword and must cover the whole phrase.
"""
import asyncio
import inspect
import string
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import parse

from utils.custom_exceptions import AmbiguousStepError, StepTimeoutError, UndefinedStepError
from utils.logger import test_logger


@parse.with_pattern(r'-?\d+')
def parse_int(text):
    return int(text)


@parse.with_pattern(r'[^"]*')
def parse_quoted(text):
    return text


PARAMETER_TYPES: Dict[str, Callable[[str], Any]] = {
    'Int': parse_int,
    'Quoted': parse_quoted,
}

# Field values used to build a sample phrase for the registration-time overlap check
SAMPLE_VALUES = {'Int': '1', 'Quoted': 'sample', '': 'sample text'}


def compile_template(template: str) -> parse.Parser:
    """
    Compile a template with the suite's field types.

    Raises:
        ValueError: the template uses an unknown field type
    """
    return parse.compile(template, extra_types=PARAMETER_TYPES, case_sensitive=True)


def sample_phrase(template: str) -> str:
    """A phrase the template is known to match, e.g. 'status should be 1'."""
    parts = []
    for literal, field_name, spec, _ in string.Formatter().parse(template):
        parts.append(literal)
        if field_name is not None:
            parts.append(SAMPLE_VALUES.get(spec or '', 'sample'))
    return ''.join(parts)


def run_with_timeout(call: Callable[[], Any], timeout: Optional[float], operation: str) -> Any:
    """
    Run a step callable to completion, awaiting it if it returns an awaitable.

    With a timeout the call runs on a daemon thread. A step still running
    when the ceiling passes is reported as failed and abandoned; it does not
    keep the interpreter alive at exit.
    """
    def target():
        result = call()
        if inspect.isawaitable(result):
            return asyncio.run(_await(result))
        return result

    if not timeout:
        return target()

    outcome = {}

    def worker():
        try:
            outcome['result'] = target()
        except BaseException as e:
            outcome['error'] = e

    thread = threading.Thread(target=worker, name=f'step: {operation}', daemon=True)
    thread.start()
    thread.join(timeout)
    if thread.is_alive():
        raise StepTimeoutError(f"Step did not finish within {timeout}s: {operation}",
                               timeout_seconds=timeout, operation=operation)
    if 'error' in outcome:
        raise outcome['error']
    return outcome.get('result')


async def _await(awaitable):
    return await awaitable


@dataclass(frozen=True)
class StepDefinition:
    """One registered template and its handler."""
    keyword: str
    template: str
    func: Callable[..., Any]
    parser: parse.Parser = field(repr=False, compare=False)

    @property
    def sample(self) -> str:
        return sample_phrase(self.template)

    @property
    def location(self) -> str:
        code = self.func.__code__
        return f"{code.co_filename}:{code.co_firstlineno}"

    def accepts(self, argument: str) -> bool:
        return argument in inspect.signature(self.func).parameters

    def match(self, text: str) -> Optional[parse.Result]:
        return self.parser.parse(text)

    def invoke(self, context: Any, args: Tuple[Any, ...] = (),
               kwargs: Optional[Dict[str, Any]] = None,
               table: Optional[List[List[str]]] = None,
               text: Optional[str] = None,
               timeout: Optional[float] = None) -> Any:
        """Call the handler with the scenario context, arguments and optional table/docstring."""
        kwargs = dict(kwargs or {})
        if table is not None and self.accepts('table'):
            kwargs['table'] = table
        if text is not None and self.accepts('text'):
            kwargs['text'] = text
        return run_with_timeout(lambda: self.func(context, *args, **kwargs), timeout, self.template)


@dataclass(frozen=True)
class BoundStep:
    """A definition matched against a phrase, with converted arguments."""
    definition: StepDefinition
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    def invoke(self, context: Any, table=None, text=None, timeout=None) -> Any:
        return self.definition.invoke(context, self.args, self.kwargs,
                                      table=table, text=text, timeout=timeout)


class StepRegistry:
    """
    Fixed set of step definitions.

    Registration rejects a template that is identical to, or matches a sample
    phrase of, one already registered. Overlaps that check cannot see are
    caught by match(), which refuses a phrase more than one template accepts.
    """

    def __init__(self):
        self._definitions: List[StepDefinition] = []

    @property
    def definitions(self) -> Tuple[StepDefinition, ...]:
        return tuple(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def register(self, keyword: str, template: str, func: Callable[..., Any]) -> StepDefinition:
        definition = StepDefinition(keyword, template, func, compile_template(template))

        for existing in self._definitions:
            if existing.template == template \
                    or existing.match(definition.sample) is not None \
                    or definition.match(existing.sample) is not None:
                raise AmbiguousStepError(template, existing.template)

        self._definitions.append(definition)
        return definition

    def step(self, template: str, keyword: str = 'step'):
        """Decorator registering a handler for a template."""
        def decorator(func):
            self.register(keyword, template, func)
            return func
        return decorator

    def given(self, template: str):
        return self.step(template, 'given')

    def when(self, template: str):
        return self.step(template, 'when')

    def then(self, template: str):
        return self.step(template, 'then')

    def match(self, text: str) -> BoundStep:
        """
        Resolve a phrase (without its keyword) to exactly one definition.

        Raises:
            UndefinedStepError: nothing matches
            AmbiguousStepError: more than one definition matches
        """
        found = []
        for definition in self._definitions:
            result = definition.match(text)
            if result is not None:
                found.append(BoundStep(definition, tuple(result.fixed), dict(result.named)))

        if not found:
            raise UndefinedStepError(text)
        if len(found) > 1:
            raise AmbiguousStepError(found[1].definition.template, found[0].definition.template,
                                     phrase=text)
        test_logger.debug(f"'{text}' -> {found[0].definition.template}")
        return found[0]
