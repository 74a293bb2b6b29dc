"""
Unit tests for step_registry.py module.

Covers template compilation, phrase matching, ambiguity detection at
registration and dispatch, table/docstring passing and the per-step time
ceiling.
"""
import asyncio
import subprocess
import sys
import textwrap
import time
import unittest
from pathlib import Path

import pytest

from scenario.step_registry import StepRegistry, compile_template, run_with_timeout, sample_phrase
from utils.custom_exceptions import AmbiguousStepError, StepTimeoutError, UndefinedStepError

PROJECT_ROOT = Path(__file__).parent.parent.parent


class TestCompileTemplate(unittest.TestCase):
    """Template compilation and sample phrases."""

    def test_custom_types_convert(self):
        parser = compile_template('the response time should be within {percentage:Int}% of "{name:Quoted}"')
        result = parser.parse('the response time should be within 20% of "baseline"')

        self.assertEqual(result.named, {'percentage': 20, 'name': 'baseline'})

    def test_sample_phrase(self):
        self.assertEqual(sample_phrase('the response time should be within {percentage:Int}% of "{name:Quoted}"'),
                         'the response time should be within 1% of "sample"')

    def test_quoted_field_may_be_empty(self):
        result = compile_template('I have a bearer token "{token:Quoted}"').parse('I have a bearer token ""')
        self.assertEqual(result['token'], '')

    def test_unknown_parameter_type_rejected(self):
        with self.assertRaises(ValueError):
            compile_template('a {shade:Colour} step')


class TestStepRegistry(unittest.TestCase):
    """Registration and dispatch."""

    def setUp(self):
        self.registry = StepRegistry()
        self.calls = []

        @self.registry.when('I send a GET request to "{endpoint:Quoted}"')
        def get(ctx, endpoint):
            self.calls.append(('get', endpoint))

        @self.registry.then('the response status code should be {status:Int}')
        def status(ctx, status):
            self.calls.append(('status', status))

    def test_match_converts_arguments(self):
        bound = self.registry.match('the response status code should be 201')

        self.assertEqual(bound.kwargs, {'status': 201})
        self.assertIsInstance(bound.kwargs['status'], int)

    def test_negative_integer(self):
        self.registry.match('the response status code should be -1').invoke(context=None)
        self.assertEqual(self.calls, [('status', -1)])

    def test_quoted_parameter_drops_quotes(self):
        bound = self.registry.match('I send a GET request to "/posts/1"')
        bound.invoke(context=None)

        self.assertEqual(self.calls, [('get', '/posts/1')])

    def test_stacked_templates_share_a_handler(self):
        @self.registry.then('the array should contain at least {count:Int} item')
        @self.registry.then('the array should contain at least {count:Int} items')
        def min_items(ctx, count):
            return count

        self.assertEqual(self.registry.match('the array should contain at least 1 item').kwargs, {'count': 1})
        self.assertEqual(self.registry.match('the array should contain at least 5 items').kwargs, {'count': 5})

    def test_match_is_whole_phrase(self):
        with self.assertRaises(UndefinedStepError):
            self.registry.match('the response status code should be 200 or 201')

    def test_undefined_phrase_raises(self):
        with self.assertRaises(UndefinedStepError) as ctx:
            self.registry.match('I do something nobody registered')
        self.assertEqual(ctx.exception.phrase, 'I do something nobody registered')

    def test_identical_template_rejected(self):
        with self.assertRaises(AmbiguousStepError):
            self.registry.then('the response status code should be {status:Int}')(lambda ctx, status: None)

    def test_overlapping_template_rejected(self):
        # an untyped field also accepts the digits matched by Int
        with self.assertRaises(AmbiguousStepError) as ctx:
            self.registry.then('the response status code should be {code}')(lambda ctx, code: None)
        self.assertEqual(ctx.exception.existing, 'the response status code should be {status:Int}')

    def test_overlap_found_at_dispatch(self):
        registry = StepRegistry()
        registry.then('{first} b')(lambda ctx, first: None)
        registry.then('a {second}')(lambda ctx, second: None)

        with self.assertRaises(AmbiguousStepError) as ctx:
            registry.match('a b')
        self.assertEqual(ctx.exception.phrase, 'a b')
        self.assertEqual({ctx.exception.template, ctx.exception.existing}, {'{first} b', 'a {second}'})

    def test_distinct_templates_coexist(self):
        self.registry.when('I send a GET request to "{endpoint:Quoted}" with bearer authentication')(
            lambda ctx, endpoint: None)
        self.assertEqual(len(self.registry), 3)

    def test_table_passed_only_when_accepted(self):
        received = {}

        @self.registry.given('I have the following post data:')
        def with_table(ctx, table):
            received['table'] = table

        @self.registry.given('nothing in particular')
        def without_table(ctx):
            received['plain'] = True

        rows = [['title', 'foo']]
        self.registry.match('I have the following post data:').invoke(None, table=rows)
        self.registry.match('nothing in particular').invoke(None, table=rows)

        self.assertEqual(received, {'table': rows, 'plain': True})

    def test_docstring_passed_as_text(self):
        received = []
        self.registry.given('the request body is:')(lambda ctx, text: received.append(text))

        self.registry.match('the request body is:').invoke(None, text='{"a": 1}')
        self.assertEqual(received, ['{"a": 1}'])

    def test_context_is_first_argument(self):
        seen = []
        self.registry.then('I remember "{word:Quoted}"')(lambda ctx, word: seen.append((ctx, word)))

        self.registry.match('I remember "this"').invoke('ctx-object')
        self.assertEqual(seen, [('ctx-object', 'this')])


class TestStepExecution:
    """Timeouts and awaitable handlers."""

    def test_async_handler_is_awaited(self):
        registry = StepRegistry()
        results = []

        @registry.then('wait for {value:Int}')
        async def waiter(ctx, value):
            await asyncio.sleep(0)
            results.append(value)

        registry.match('wait for 3').invoke(None, timeout=5)
        assert results == [3]

    def test_handler_exception_propagates(self):
        registry = StepRegistry()

        @registry.then('it fails')
        def fails(ctx):
            raise AssertionError("boom")

        with pytest.raises(AssertionError, match="boom"):
            registry.match('it fails').invoke(None, timeout=5)

    def test_result_returned_from_worker(self):
        assert run_with_timeout(lambda: 'done', 5, 'worker') == 'done'

    def test_slow_step_times_out(self):
        with pytest.raises(StepTimeoutError) as exc_info:
            run_with_timeout(lambda: time.sleep(1), 0.05, 'slow step')

        assert exc_info.value.details['operation'] == 'slow step'
        assert exc_info.value.details['timeout_seconds'] == 0.05

    def test_no_timeout_runs_inline(self):
        assert run_with_timeout(lambda: 'done', None, 'inline') == 'done'

    def test_hung_step_does_not_block_exit(self):
        script = textwrap.dedent("""
            import time
            from scenario.step_registry import run_with_timeout
            from utils.custom_exceptions import StepTimeoutError
            try:
                run_with_timeout(lambda: time.sleep(30), 0.2, 'hung step')
            except StepTimeoutError:
                print('timed out')
        """)
        start = time.monotonic()
        completed = subprocess.run([sys.executable, '-c', script], cwd=str(PROJECT_ROOT),
                                   capture_output=True, text=True, timeout=20)

        assert 'timed out' in completed.stdout
        assert time.monotonic() - start < 15
