"""
End-to-end tests of the step catalogue driven by ScenarioRunner.

A fake client stands in for the HTTP API, serving a small in-memory set of
posts and users with canned responses.
"""
import json
import re
import time
import unittest
from unittest.mock import patch

from api.response_snapshot import ResponseSnapshot
from scenario.api_steps import registry
from scenario.runner import Phrase, ScenarioRunner, StepStatus, classify
from scenario.step_registry import StepRegistry
from utils.config_loader import ApiConfig, AuthConfig
from utils.custom_exceptions import (MissingVariableError, ResponseAssertionError, TransportError,
                                     UndefinedStepError)


class FakeApi:
    """In-memory stand-in for a JSONPlaceholder-style API."""

    def __init__(self, config=None):
        self.calls = []
        self.closed = 0
        self.posts = [{"userId": 1, "id": i, "title": f"title {i}", "body": f"body {i}"}
                      for i in range(1, 6)]
        self.users = {1: {"id": 1, "name": "Leanne Graham", "username": "Bret",
                          "email": "Sincere@april.biz",
                          "address": {"city": "Gwenborough", "geo": {"lat": "-37.3", "lng": "81.1"}}}}

    def _reply(self, status, body, method, path):
        return ResponseSnapshot(status_code=status,
                                headers={"Content-Type": "application/json; charset=utf-8"},
                                text=json.dumps(body), elapsed_ms=5.0, method=method, url=path)

    def request(self, method, path, headers=None, json_data=None, timeout=None):
        self.calls.append((method, path, headers, json_data))
        if path == "/unreachable":
            raise TransportError("connection refused", method=method, url=path)

        route, _, query = path.partition("?")
        if route == "/posts" and method == "GET":
            posts = list(self.posts)
            if "_order=desc" in query:
                posts.reverse()
            return self._reply(200, posts, method, path)
        if route == "/posts" and method == "POST":
            return self._reply(201, dict(json_data or {}, id=101), method, path)

        match = re.fullmatch(r"/(posts|users)/(\d+)", route)
        if match:
            resource, item_id = match.group(1), int(match.group(2))
            if resource == "users":
                user = self.users.get(item_id)
                return self._reply(200 if user else 404, user or {}, method, path)
            post = next((p for p in self.posts if p["id"] == item_id), None)
            if post is None:
                return self._reply(404, {}, method, path)
            if method == "PUT":
                return self._reply(200, dict(json_data or {}, id=item_id), method, path)
            if method == "DELETE":
                return self._reply(200, {}, method, path)
            return self._reply(200, post, method, path)
        return self._reply(404, {}, method, path)

    def close(self):
        self.closed += 1


class ScenarioRunnerTestCase(unittest.TestCase):

    def setUp(self):
        self.api = FakeApi()
        self.config = ApiConfig(base_url="https://fake.test", step_timeout=5)
        self.runner = ScenarioRunner(registry, self.config, client_factory=lambda config: self.api)

    def run_scenario(self, *phrases):
        return self.runner.run(self._testMethodName, list(phrases))

    def assertPassed(self, result):
        failure = result.failure
        self.assertTrue(result.passed, failure and f"{failure.phrase.text}: {failure.error}")


class TestReadScenarios(ScenarioRunnerTestCase):

    def test_get_all_posts(self):
        result = self.run_scenario(
            'Given the API base URL is "https://jsonplaceholder.typicode.com"',
            'When I send a GET request to "/posts"',
            'Then the response status code should be 200',
            'And the response should be valid JSON',
            'And the response should be a JSON array',
            'And the response array should contain at least 1 item',
            'And the response array should have at most 5 items',
            'And each item should have property "title"',
            'And each array item field "id" should be unique',
            'And each array item should have field "userId" of type "number"',
            'And the response header "Content-Type" should contain "application/json"',
            'And the response time should be less than 2000 ms',
        )

        self.assertPassed(result)
        self.assertEqual(len(result.steps), 12)
        self.assertTrue(all(step.status == StepStatus.PASSED for step in result.steps))

    def test_required_fields_table(self):
        result = self.runner.run("required fields", [
            'When I send a GET request to "/users/1"',
            Phrase.parse('Then the response should have required fields:',
                         table=[["id"], ["name"], ["email"], ["address"]]),
            'And the response nested field "address.geo.lat" should exist',
            'And the response property "address" should have property "city"',
            'And the response field "email" should match email format',
            'And the response field "username" should not contain spaces',
        ])

        self.assertPassed(result)

    def test_response_is_replaced_by_each_request(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'Then the response status code should be 200',
            'When I send a GET request to "/posts/99999"',
            'Then the response status code should be 404',
        )

        self.assertPassed(result)

    def test_sorted_and_paged(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts?_order=asc"',
            'Then the response array should be sorted by "id" in "ascending" order',
            'And I store the last array item field "id" as "lastId"',
            'When I send a GET request to "/posts?_order=desc"',
            'Then the response array should be sorted by "id" in "descending" order',
        )

        self.assertPassed(result)

    def test_foreign_keys_are_looked_up(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts"',
            'Then each array item should have valid foreign key "userId" in resource "/users"',
        )

        self.assertPassed(result)
        lookups = [call[1] for call in self.api.calls if call[1].startswith("/users/")]
        self.assertEqual(lookups, ["/users/1"] * 5)


class TestWriteScenarios(ScenarioRunnerTestCase):

    def test_create_then_reuse_id(self):
        result = self.runner.run("create", [
            Phrase.parse('Given I have the following post data:',
                         table=[["title", "foo"], ["body", "bar"], ["userId", "1"]]),
            'When I send a POST request to "/posts" with the data',
            'Then the response status code should be 201',
            'And the response should have property "title" with value "foo"',
            'And the response should have property "userId" with value 1',
            'And I store the response field "id" as "createdId"',
            'When I send a GET request to "/posts/{createdId}"',
            'Then the response status code should be 404',
        ])

        self.assertPassed(result)
        self.assertEqual(self.api.calls[0][3], {"title": "foo", "body": "bar", "userId": 1})
        self.assertEqual(self.api.calls[1][1], "/posts/101")

    def test_update_with_inline_table(self):
        result = self.runner.run("update", [
            Phrase.parse('When I send a PUT request to "/posts/1" with the data:',
                         table=[["title", "updated"], ["zipcode", '"02139"']]),
            'Then the response status code should be 200',
            'And the response field "zipcode" should be of type "string"',
            'And the response should have property "id" with value 1',
        ])

        self.assertPassed(result)
        self.assertEqual(self.api.calls[0][3], {"title": "updated", "zipcode": "02139"})

    def test_delete(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts"',
            'Then I store all array item field "id" values as "allIds"',
            'When I send a DELETE request to "/posts/1"',
            'Then the response status code should be 200',
        )

        self.assertPassed(result)
        self.assertEqual(self.api.calls[-1][:2], ("DELETE", "/posts/1"))


class TestAuthScenarios(ScenarioRunnerTestCase):

    def test_bearer_header_sent(self):
        result = self.run_scenario(
            'Given the API supports multiple authentication methods',
            'And I have a bearer token "abc"',
            'When I send a GET request to "/posts/1" with bearer authentication',
            'Then the response status code should be 200',
        )

        self.assertPassed(result)
        self.assertEqual(self.api.calls[0][2], {"Authorization": "Bearer abc"})

    def test_basic_header_sent(self):
        result = self.run_scenario(
            'Given I have basic auth credentials "user" and "pass"',
            'When I send a GET request to "/posts/1" with basic authentication',
        )

        self.assertPassed(result)
        self.assertEqual(self.api.calls[0][2], {"Authorization": "Basic dXNlcjpwYXNz"})

    def test_mismatched_style_is_an_error(self):
        result = self.run_scenario(
            'Given I have an API key "k"',
            'When I send a GET request to "/posts/1" with bearer authentication',
            'Then the response status code should be 200',
        )

        self.assertEqual(result.status, StepStatus.ERROR)
        self.assertEqual(result.steps[2].status, StepStatus.SKIPPED)
        self.assertEqual(self.api.calls, [])

    @patch('scenario.api_steps.config_loader')
    def test_configured_api_key(self, mock_loader):
        mock_loader.get_auth_config.return_value = AuthConfig(api_key="from-config")

        result = self.run_scenario(
            'Given I have the configured API key',
            'When I send a GET request to "/posts/1" with API key in header',
        )

        self.assertPassed(result)
        self.assertEqual(self.api.calls[0][2], {"X-API-Key": "from-config"})

    @patch('scenario.api_steps.config_loader')
    def test_unconfigured_token_is_an_error(self, mock_loader):
        mock_loader.get_auth_config.return_value = AuthConfig()

        result = self.run_scenario('Given I have the configured bearer token')

        self.assertEqual(result.status, StepStatus.ERROR)


class TestConsistencyScenarios(ScenarioRunnerTestCase):

    def test_repeat_read_matches_snapshot(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'Then I store the entire response as "first"',
            'When I send a GET request to "/posts/1"',
            'Then the response should match stored "first"',
            'When I send a GET request to "/posts/2"',
            'Then the response should match stored "first"',
        )

        self.assertEqual(result.status, StepStatus.FAILED)
        self.assertEqual(result.failure.phrase.text, 'the response should match stored "first"')
        self.assertEqual([s.status for s in result.steps[:5]], [StepStatus.PASSED] * 5)

    def test_match_against_stored_field_value_fails(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'Then I store the response field "id" as "postId"',
            'And the response should match stored "postId"',
        )

        self.assertEqual(result.status, StepStatus.FAILED)
        self.assertIn("differs from stored snapshot 'postId'", result.failure.error)

    def test_batch_keeps_current_response(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'And I send 3 GET requests to "/posts/2"',
            'Then all responses should have status code 200',
            'And all responses should have consistent data structure',
            'And the response should have property "id" with value 1',
        )

        self.assertPassed(result)
        self.assertEqual(len(self.api.calls), 4)

    def test_timing_and_size(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'Then I measure the response time as "baseline"',
            'When I send a GET request to "/posts/1"',
            'Then the response time should be within 150% of "baseline"',
            'And the response payload size should be less than 1 KB',
        )

        self.assertPassed(result)

    def test_array_length_against_stored_value(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts"',
            'Then I store the response array length as "count"',
            'When I send a GET request to "/posts"',
            'Then the response array length should equal stored value "count"',
            'And the first array item field "id" should be greater than stored value "count"',
        )

        self.assertEqual(result.status, StepStatus.FAILED)
        self.assertEqual(result.steps[3].status, StepStatus.PASSED)


class TestFailureHandling(ScenarioRunnerTestCase):

    def test_fail_fast_skips_remaining_steps(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'Then the response status code should be 500',
            'When I send a GET request to "/posts/2"',
            'Then the response status code should be 200',
        )

        self.assertEqual(result.status, StepStatus.FAILED)
        self.assertEqual([s.status for s in result.steps],
                         [StepStatus.PASSED, StepStatus.FAILED, StepStatus.SKIPPED, StepStatus.SKIPPED])
        self.assertEqual(len(self.api.calls), 1)
        self.assertIn("500", result.failure.error)

    def test_undefined_step(self):
        result = self.run_scenario(
            'When I send a GET request to "/posts/1"',
            'Then the moon should be full',
            'Then the response status code should be 200',
        )

        self.assertEqual(result.status, StepStatus.UNDEFINED)
        self.assertEqual(result.steps[2].status, StepStatus.SKIPPED)

    def test_missing_variable_is_an_error(self):
        result = self.run_scenario('When I send a GET request to "/posts/{neverStored}"')

        self.assertEqual(result.status, StepStatus.ERROR)
        self.assertEqual(self.api.calls, [])

    def test_assertion_before_request_is_an_error(self):
        result = self.run_scenario('Then the response status code should be 200')

        self.assertEqual(result.status, StepStatus.ERROR)

    def test_transport_error_is_not_a_failure(self):
        result = self.run_scenario(
            'When I send a GET request to "/unreachable"',
            'Then the response status code should be 200',
        )

        self.assertEqual(result.status, StepStatus.ERROR)
        self.assertEqual(result.steps[1].status, StepStatus.SKIPPED)

    def test_client_closed_after_each_scenario(self):
        self.run_scenario('When I send a GET request to "/posts/1"')
        self.run_scenario('Then the response status code should be 200')

        self.assertEqual(self.api.closed, 2)

    def test_scenarios_do_not_share_variables(self):
        results = self.runner.run_all({
            "store": ['When I send a GET request to "/posts/1"',
                      'Then I store the response field "id" as "postId"'],
            "reuse": ['When I send a GET request to "/posts/{postId}"'],
        })

        self.assertTrue(results[0].passed)
        self.assertEqual(results[1].status, StepStatus.ERROR)

    def test_slow_step_times_out(self):
        slow_registry = StepRegistry()
        slow_registry.then('the step takes {ms:Int} ms')(lambda ctx, ms: time.sleep(ms / 1000))
        runner = ScenarioRunner(slow_registry, ApiConfig(base_url="https://fake.test", step_timeout=0.05),
                                client_factory=lambda config: self.api)

        result = runner.run("slow", ['Then the step takes 500 ms'])

        self.assertEqual(result.status, StepStatus.ERROR)
        self.assertIn("did not finish", result.failure.error)


class TestRunnerHelpers(unittest.TestCase):

    def test_phrase_keyword_is_stripped(self):
        phrase = Phrase.parse('  And the response should be a JSON array ')

        self.assertEqual(phrase.keyword, 'And')
        self.assertEqual(phrase.text, 'the response should be a JSON array')

    def test_phrase_without_keyword(self):
        self.assertEqual(Phrase.parse('I store x').keyword, '*')

    def test_classify(self):
        self.assertEqual(classify(UndefinedStepError("x")), StepStatus.UNDEFINED)
        self.assertEqual(classify(ResponseAssertionError("x")), StepStatus.FAILED)
        self.assertEqual(classify(AssertionError("x")), StepStatus.FAILED)
        self.assertEqual(classify(MissingVariableError("x")), StepStatus.ERROR)
        self.assertEqual(classify(TransportError("x")), StepStatus.ERROR)

    def test_catalogue_has_no_ambiguity(self):
        templates = [definition.template for definition in registry.definitions]
        self.assertEqual(len(templates), len(set(templates)))
        self.assertGreaterEqual(len(registry), 70)
