"""
REST API step definitions.

Handlers receive the ScenarioContext first, then the phrase parameters. The
same registry drives behave (features/steps/api_steps.py) and ScenarioRunner.
"""
from api import assertions
from api.json_validator import json_validator, json_type_of
from scenario.context import ApiKey, BasicAuth, BearerToken, ScenarioContext
from scenario.step_registry import StepRegistry
from utils.config_loader import config_loader
from utils.custom_exceptions import MissingCredentialsError, ResponseAssertionError
from utils.logger import logger

registry = StepRegistry()
given, when, then = registry.given, registry.when, registry.then

# Variable holding the responses of the last batch of requests
BATCH_RESPONSES = 'multipleResponses'


# GIVEN steps

@given('the API base URL is "{url:Quoted}"')
def step_api_base_url(ctx: ScenarioContext, url):
    """Document the base URL a feature targets; the configured one is used."""
    configured = getattr(ctx.client, 'base_url', None)
    if configured and configured != url.rstrip('/'):
        logger.warning(f"Feature targets {url} but the client is configured for {configured}")


@given('the API supports multiple authentication methods')
def step_multiple_auth_methods(ctx: ScenarioContext):
    ctx.auth = None


@given('I have a bearer token "{token:Quoted}"')
def step_bearer_token(ctx: ScenarioContext, token):
    ctx.use_credentials(BearerToken(token))


@given('I have an API key "{key:Quoted}"')
def step_api_key(ctx: ScenarioContext, key):
    ctx.use_credentials(ApiKey(key))


@given('I have basic auth credentials "{username:Quoted}" and "{password:Quoted}"')
def step_basic_auth(ctx: ScenarioContext, username, password):
    ctx.use_credentials(BasicAuth(username, password))


@given('I have the configured bearer token')
def step_configured_bearer_token(ctx: ScenarioContext):
    auth = config_loader.get_auth_config()
    if not auth.bearer_token:
        raise MissingCredentialsError(BearerToken.style)
    ctx.use_credentials(BearerToken(auth.bearer_token))


@given('I have the configured API key')
def step_configured_api_key(ctx: ScenarioContext):
    auth = config_loader.get_auth_config()
    if not auth.api_key:
        raise MissingCredentialsError(ApiKey.style)
    ctx.use_credentials(ApiKey(auth.api_key))


@given('I have the configured basic auth credentials')
def step_configured_basic_auth(ctx: ScenarioContext):
    auth = config_loader.get_auth_config()
    if not (auth.username and auth.password):
        raise MissingCredentialsError(BasicAuth.style)
    ctx.use_credentials(BasicAuth(auth.username, auth.password))


@given('I have the following post data:')
def step_post_data(ctx: ScenarioContext, table):
    """Table rows of | field | value | become the next request body."""
    ctx.set_pending_request(table)


@given('I have the following update data:')
def step_update_data(ctx: ScenarioContext, table):
    ctx.set_pending_request(table)


# WHEN steps

@when('I send a GET request to "{endpoint:Quoted}"')
def step_get(ctx: ScenarioContext, endpoint):
    ctx.send('GET', endpoint)


@when('I send a GET request to "{endpoint:Quoted}" with bearer authentication')
def step_get_bearer(ctx: ScenarioContext, endpoint):
    ctx.send('GET', endpoint, headers=ctx.auth_headers(BearerToken))


@when('I send a GET request to "{endpoint:Quoted}" with API key in header')
def step_get_api_key(ctx: ScenarioContext, endpoint):
    ctx.send('GET', endpoint, headers=ctx.auth_headers(ApiKey))


@when('I send a GET request to "{endpoint:Quoted}" with basic authentication')
def step_get_basic(ctx: ScenarioContext, endpoint):
    ctx.send('GET', endpoint, headers=ctx.auth_headers(BasicAuth))


@when('I send a POST request to "{endpoint:Quoted}" with the data')
def step_post(ctx: ScenarioContext, endpoint):
    ctx.send('POST', endpoint, json_data=ctx.pending_request)


@when('I send a PUT request to "{endpoint:Quoted}" with the data')
def step_put(ctx: ScenarioContext, endpoint):
    ctx.send('PUT', endpoint, json_data=ctx.pending_request)


@when('I send a POST request to "{endpoint:Quoted}" with the data and bearer authentication')
def step_post_bearer(ctx: ScenarioContext, endpoint):
    ctx.send('POST', endpoint, headers=ctx.auth_headers(BearerToken), json_data=ctx.pending_request)


@when('I send a POST request to "{endpoint:Quoted}" with the data:')
def step_post_table(ctx: ScenarioContext, endpoint, table):
    ctx.set_pending_request(table)
    ctx.send('POST', endpoint, json_data=ctx.pending_request)


@when('I send a PUT request to "{endpoint:Quoted}" with the data:')
def step_put_table(ctx: ScenarioContext, endpoint, table):
    ctx.set_pending_request(table)
    ctx.send('PUT', endpoint, json_data=ctx.pending_request)


@when('I send a DELETE request to "{endpoint:Quoted}"')
def step_delete(ctx: ScenarioContext, endpoint):
    ctx.send('DELETE', endpoint)


@when('I send {count:Int} GET requests to "{endpoint:Quoted}"')
def step_get_batch(ctx: ScenarioContext, count, endpoint):
    """Sequential requests; the batch is stored, the current response is kept."""
    ctx.variables.set(BATCH_RESPONSES, ctx.send_batch(count, 'GET', endpoint))


# THEN steps: status and shape

@then('the response status code should be {status:Int}')
def step_status(ctx: ScenarioContext, status):
    assertions.assert_status(ctx.current_response, status)


@then('the response should be valid JSON')
def step_valid_json(ctx: ScenarioContext):
    body = ctx.body
    logger.info(f"Response contains valid JSON ({json_type_of(body)})")


@then('the response should be a JSON array')
def step_json_array(ctx: ScenarioContext):
    assertions.assert_is_array(ctx.body)


@then('the response should be an array')
def step_array(ctx: ScenarioContext):
    assertions.assert_is_array(ctx.body)


@then('the response should be a JSON object')
def step_json_object(ctx: ScenarioContext):
    assertions.assert_is_object(ctx.body)


@then('the response array should contain at least {count:Int} item')
@then('the response array should contain at least {count:Int} items')
def step_min_items(ctx: ScenarioContext, count):
    assertions.assert_min_items(ctx.body, count)


@then('the response array should have at most {count:Int} item')
@then('the response array should have at most {count:Int} items')
def step_max_items(ctx: ScenarioContext, count):
    assertions.assert_max_items(ctx.body, count)


@then('the response array should not be empty')
def step_array_not_empty(ctx: ScenarioContext):
    assertions.assert_non_empty_array(ctx.body)


@then('the response array should be empty')
def step_array_empty(ctx: ScenarioContext):
    assertions.assert_empty_array(ctx.body)


@then('the response should have at least {count:Int} fields')
def step_min_fields(ctx: ScenarioContext, count):
    assertions.assert_min_keys(ctx.body, count)


@then('the response should match schema "{schema_name:Quoted}"')
def step_schema(ctx: ScenarioContext, schema_name):
    assertions.assert_matches_schema(ctx.body, json_validator.load_schema(schema_name))


# THEN steps: fields

@then('the response should have property "{field:Quoted}"')
def step_has_property(ctx: ScenarioContext, field):
    assertions.assert_has_field(ctx.body, field)


@then('the response should have property "{field:Quoted}" with value {value:Int}')
def step_property_int(ctx: ScenarioContext, field, value):
    assertions.assert_field_equals(ctx.body, field, value)


@then('the response should have property "{field:Quoted}" with value "{value:Quoted}"')
def step_property_string(ctx: ScenarioContext, field, value):
    assertions.assert_field_equals(ctx.body, field, value)


@then('the response property "{parent:Quoted}" should have property "{child:Quoted}"')
def step_nested_property(ctx: ScenarioContext, parent, child):
    assertions.assert_has_field(assertions.assert_has_field(ctx.body, parent), child)


@then('the response property "{field:Quoted}" should be a number')
def step_property_number(ctx: ScenarioContext, field):
    assertions.assert_field_type(ctx.body, field, 'number')


@then('the response property "{field:Quoted}" should be a string')
def step_property_string_type(ctx: ScenarioContext, field):
    assertions.assert_field_type(ctx.body, field, 'string')


@then('the response should have required fields:')
def step_required_fields(ctx: ScenarioContext, table):
    assertions.assert_has_fields(ctx.body, [row[0] for row in table])


@then('the response field "{field:Quoted}" should be of type "{expected_type:Quoted}"')
def step_field_type(ctx: ScenarioContext, field, expected_type):
    assertions.assert_field_type(ctx.body, field, expected_type)


@then('the response nested field "{field_path:Quoted}" should exist')
def step_nested_field(ctx: ScenarioContext, field_path):
    assertions.assert_has_field(ctx.body, field_path)


@then('the response field "{field:Quoted}" should not be null')
def step_not_null(ctx: ScenarioContext, field):
    assertions.assert_field_not_null(ctx.body, field)


@then('the response field "{field:Quoted}" should be a positive number')
def step_positive(ctx: ScenarioContext, field):
    assertions.assert_positive_number(ctx.body, field)


@then('the response field "{field:Quoted}" should equal stored value "{name:Quoted}"')
def step_equals_stored(ctx: ScenarioContext, field, name):
    assertions.assert_field_equals(ctx.body, field, ctx.variables.get(name))


# THEN steps: string content

@then('the response field "{field:Quoted}" should match email format')
def step_email(ctx: ScenarioContext, field):
    assertions.assert_email_format(ctx.body, field)


@then('the response field "{field:Quoted}" should be a non-empty string')
def step_non_empty_string(ctx: ScenarioContext, field):
    assertions.assert_non_empty_string(ctx.body, field)


@then('the response field "{field:Quoted}" should not be an empty string')
def step_not_empty_string(ctx: ScenarioContext, field):
    assertions.assert_not_empty_string(ctx.body, field)


@then('the response field "{field:Quoted}" should have length greater than {length:Int}')
def step_length_greater(ctx: ScenarioContext, field, length):
    assertions.assert_length_greater_than(ctx.body, field, length)


@then('the response field "{field:Quoted}" should not have leading whitespace')
def step_no_leading_whitespace(ctx: ScenarioContext, field):
    assertions.assert_no_leading_whitespace(ctx.body, field)


@then('the response field "{field:Quoted}" should not have trailing whitespace')
def step_no_trailing_whitespace(ctx: ScenarioContext, field):
    assertions.assert_no_trailing_whitespace(ctx.body, field)


@then('the response field "{field:Quoted}" should not contain spaces')
def step_no_spaces(ctx: ScenarioContext, field):
    assertions.assert_no_spaces(ctx.body, field)


@then('the response field "{field:Quoted}" should not contain control characters')
def step_no_control_characters(ctx: ScenarioContext, field):
    assertions.assert_no_control_characters(ctx.body, field)


# THEN steps: arrays

@then('each item should have property "{field:Quoted}"')
def step_each_item_property(ctx: ScenarioContext, field):
    assertions.assert_each_item_has_fields(ctx.body, [field])


@then('each array item should have required fields:')
def step_each_item_required(ctx: ScenarioContext, table):
    assertions.assert_each_item_has_fields(ctx.body, [row[0] for row in table])


@then('each array item should have field "{field:Quoted}" of type "{expected_type:Quoted}"')
def step_each_item_type(ctx: ScenarioContext, field, expected_type):
    assertions.assert_each_item_field_type(ctx.body, field, expected_type)


@then('each array item field "{field:Quoted}" should be a positive number')
def step_each_item_positive(ctx: ScenarioContext, field):
    assertions.assert_each_item_positive_number(ctx.body, field)


@then('each array item field "{field:Quoted}" should be a non-empty string')
def step_each_item_non_empty(ctx: ScenarioContext, field):
    assertions.assert_each_item_non_empty_string(ctx.body, field)


@then('each array item field "{field:Quoted}" should be unique')
def step_each_item_unique(ctx: ScenarioContext, field):
    assertions.assert_each_item_unique(ctx.body, field)


@then('each array item should have valid foreign key "{field:Quoted}" in resource "{resource:Quoted}"')
def step_foreign_key(ctx: ScenarioContext, field, resource):
    base = ctx.variables.substitute(resource).rstrip('/')

    def resolve(value):
        return ctx.client.request('GET', f"{base}/{value}").status_code

    assertions.assert_foreign_keys_resolve(ctx.body, field, resolve)


@then('the response array should be sorted by "{field:Quoted}" in "{order:Quoted}" order')
def step_sorted(ctx: ScenarioContext, field, order):
    assertions.assert_sorted(ctx.body, field, order)


@then('the first array item field "{field:Quoted}" should be greater than stored value "{name:Quoted}"')
def step_first_greater_than_stored(ctx: ScenarioContext, field, name):
    assertions.assert_non_empty_array(ctx.body)
    assertions.assert_field_greater_than(ctx.body[0], field, ctx.variables.get(name))


@then('the array should not contain any stored "{name:Quoted}" values')
def step_no_stored_values(ctx: ScenarioContext, name):
    assertions.assert_no_stored_values(ctx.body, ctx.variables.get(name))


@then('the response array length should equal stored value "{name:Quoted}"')
def step_length_equals_stored(ctx: ScenarioContext, name):
    assertions.assert_array_length(ctx.body, ctx.variables.get(name))


# THEN steps: headers

@then('the response header "{name:Quoted}" should contain "{expected:Quoted}"')
def step_header_contains(ctx: ScenarioContext, name, expected):
    assertions.assert_header_contains(ctx.current_response, name, expected)


@then('the response should have header "{name:Quoted}"')
def step_header_present(ctx: ScenarioContext, name):
    assertions.assert_header_present(ctx.current_response, name)


# THEN steps: timing and size

@then('the response time should be less than {max_ms:Int} ms')
def step_time_below(ctx: ScenarioContext, max_ms):
    assertions.assert_response_time_below(ctx.current_response.elapsed_ms, max_ms)


@then('the response time should be within {percentage:Int}% of "{name:Quoted}"')
def step_time_within(ctx: ScenarioContext, percentage, name):
    assertions.assert_response_time_within(ctx.current_response.elapsed_ms,
                                           ctx.variables.get(name), percentage)


@then('the response payload size should be less than {max_kb:Int} KB')
def step_payload_size(ctx: ScenarioContext, max_kb):
    assertions.assert_payload_size_below(ctx.current_response, max_kb)


# THEN steps: batches and idempotency

@then('all responses should have status code {status:Int}')
def step_batch_status(ctx: ScenarioContext, status):
    assertions.assert_all_status(ctx.variables.get(BATCH_RESPONSES), status)


@then('all responses should have consistent data structure')
def step_batch_structure(ctx: ScenarioContext):
    assertions.assert_consistent_structure(ctx.variables.get(BATCH_RESPONSES))


@then('the response should match stored "{name:Quoted}"')
def step_matches_stored(ctx: ScenarioContext, name):
    if not ctx.variables.matches_snapshot(name, ctx.body):
        raise ResponseAssertionError(
            f"Response differs from stored snapshot '{name}'",
            field='body', expected=str(ctx.variables.get(name))[:200], actual=str(ctx.body)[:200])


# Store steps

@then('I store the response field "{field:Quoted}" as "{name:Quoted}"')
def step_store_field(ctx: ScenarioContext, field, name):
    ctx.variables.set(name, assertions.assert_has_field(ctx.body, field))


@then('I store the last array item field "{field:Quoted}" as "{name:Quoted}"')
def step_store_last_item(ctx: ScenarioContext, field, name):
    assertions.assert_non_empty_array(ctx.body)
    ctx.variables.set(name, assertions.assert_has_field(ctx.body[-1], field))


@then('I store all array item field "{field:Quoted}" values as "{name:Quoted}"')
def step_store_all_values(ctx: ScenarioContext, field, name):
    ctx.variables.set(name, assertions.item_values(ctx.body, field))


@then('I store the entire response as "{name:Quoted}"')
def step_store_snapshot(ctx: ScenarioContext, name):
    ctx.variables.store_snapshot(name, ctx.body)


@then('I store the response array length as "{name:Quoted}"')
def step_store_length(ctx: ScenarioContext, name):
    ctx.variables.set(name, len(assertions.assert_is_array(ctx.body)))


@then('I measure the response time as "{name:Quoted}"')
def step_measure_time(ctx: ScenarioContext, name):
    ctx.variables.set(name, ctx.current_response.elapsed_ms)
