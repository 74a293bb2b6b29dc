"""
Assertions over captured responses.

Every check either returns silently or raises ResponseAssertionError naming
the field that was checked together with the expected and actual values.
"""
import re
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from api.json_validator import json_validator, json_type_of, JSON_TYPES
from api.response_snapshot import ResponseSnapshot
from utils.custom_exceptions import ResponseAssertionError


EMAIL_PATTERN = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]+')

# C0 controls and DEL; tab, line feed and carriage return are allowed
CONTROL_CHARACTERS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')

SORT_ORDERS = ('ascending', 'descending')


def _fail(message: str, field: Optional[str], expected: Any, actual: Any, **details):
    raise ResponseAssertionError(message, field=field, expected=expected, actual=actual, **details)


def _is_number(value: Any) -> bool:
    return json_type_of(value) == 'number'


def _field(data: Any, field: str) -> Any:
    return json_validator.resolve_path(data, field)


def _string_field(data: Any, field: str) -> str:
    value = _field(data, field)
    if not isinstance(value, str):
        _fail(f"Field '{field}' is not a string", field, 'string', json_type_of(value))
    return value


# --- Status -----------------------------------------------------------------

def assert_status(response: ResponseSnapshot, expected: int):
    """Exact status code match."""
    if response.status_code != expected:
        _fail(f"Expected status code {expected}, got {response.status_code}. "
              f"Response: {response.text[:500]}",
              'status', expected, response.status_code)


# --- Shape ------------------------------------------------------------------

def assert_is_array(data: Any) -> List[Any]:
    if not isinstance(data, list):
        _fail(f"Expected JSON array, got {json_type_of(data)}", 'body', 'array', json_type_of(data))
    return data


def assert_is_object(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, dict):
        _fail(f"Expected JSON object, got {json_type_of(data)}", 'body', 'object', json_type_of(data))
    return data


def assert_min_items(data: Any, minimum: int):
    items = assert_is_array(data)
    if len(items) < minimum:
        _fail(f"Array has {len(items)} items, expected at least {minimum}",
              'body.length', f">= {minimum}", len(items))


def assert_max_items(data: Any, maximum: int):
    items = assert_is_array(data)
    if len(items) > maximum:
        _fail(f"Array has {len(items)} items, expected at most {maximum}",
              'body.length', f"<= {maximum}", len(items))


def assert_empty_array(data: Any):
    items = assert_is_array(data)
    if items:
        _fail(f"Expected empty array, got {len(items)} items", 'body.length', 0, len(items))


def assert_non_empty_array(data: Any):
    items = assert_is_array(data)
    if not items:
        _fail("Expected a non-empty array", 'body.length', '> 0', 0)


def assert_array_length(data: Any, expected: int):
    items = assert_is_array(data)
    if len(items) != expected:
        _fail(f"Array has {len(items)} items, expected {expected}", 'body.length', expected, len(items))


def assert_min_keys(data: Any, minimum: int):
    obj = assert_is_object(data)
    if len(obj) < minimum:
        _fail(f"Object has {len(obj)} fields, expected at least {minimum}",
              'body', f">= {minimum} fields", sorted(obj.keys()))


# --- Field presence, type and value -----------------------------------------

def assert_has_field(data: Any, field: str) -> Any:
    """Dotted-path presence; fails at the first missing segment."""
    return _field(data, field)


def assert_has_fields(data: Any, fields: Iterable[str]):
    for field in fields:
        _field(data, field)


def assert_field_type(data: Any, field: str, expected_type: str):
    if expected_type not in JSON_TYPES:
        raise ValueError(f"Unknown JSON type '{expected_type}', expected one of {JSON_TYPES}")
    actual_type = json_type_of(_field(data, field))
    if actual_type != expected_type:
        _fail(f"Field '{field}' expected type '{expected_type}', got '{actual_type}'",
              field, expected_type, actual_type)


def assert_field_equals(data: Any, field: str, expected: Any):
    """Exact equality; a number never equals its string form or a boolean."""
    actual = _field(data, field)
    same_kind = json_type_of(actual) == json_type_of(expected)
    if not same_kind or actual != expected:
        _fail(f"Field '{field}' expected {expected!r}, got {actual!r}", field, expected, actual)


def assert_field_not_null(data: Any, field: str):
    value = _field(data, field)
    if value is None:
        _fail(f"Field '{field}' is null", field, 'not null', None)


def assert_field_greater_than(data: Any, field: str, threshold: Any):
    value = _field(data, field)
    if not (_is_number(value) and _is_number(threshold)):
        _fail(f"Field '{field}' cannot be compared numerically with {threshold!r}",
              field, f"> {threshold!r}", value)
    if not value > threshold:
        _fail(f"Field '{field}' expected > {threshold}, got {value}", field, f"> {threshold}", value)


def assert_positive_number(data: Any, field: str):
    value = _field(data, field)
    if not _is_number(value) or value <= 0:
        _fail(f"Field '{field}' expected a positive number, got {value!r}", field, '> 0', value)


# --- String content ---------------------------------------------------------

def assert_non_empty_string(data: Any, field: str):
    value = _string_field(data, field)
    if len(value) == 0:
        _fail(f"Field '{field}' is an empty string", field, 'non-empty string', value)


def assert_not_empty_string(data: Any, field: str):
    """Only the exact empty string fails; other types pass."""
    value = _field(data, field)
    if value == '':
        _fail(f"Field '{field}' is an empty string", field, "not ''", value)


def assert_no_leading_whitespace(data: Any, field: str):
    value = _string_field(data, field)
    if value != value.lstrip():
        _fail(f"Field '{field}' has leading whitespace", field, value.lstrip(), value)


def assert_no_trailing_whitespace(data: Any, field: str):
    value = _string_field(data, field)
    if value != value.rstrip():
        _fail(f"Field '{field}' has trailing whitespace", field, value.rstrip(), value)


def assert_no_spaces(data: Any, field: str):
    value = _string_field(data, field)
    if ' ' in value:
        _fail(f"Field '{field}' contains spaces", field, 'no spaces', value)


def is_email(value: str) -> bool:
    return EMAIL_PATTERN.fullmatch(value) is not None


def assert_email_format(data: Any, field: str):
    value = _string_field(data, field)
    if not is_email(value):
        _fail(f"Field '{field}' is not a valid email address", field, EMAIL_PATTERN.pattern, value)


def has_control_characters(value: str) -> bool:
    return CONTROL_CHARACTERS.search(value) is not None


def assert_no_control_characters(data: Any, field: str):
    value = _string_field(data, field)
    match = CONTROL_CHARACTERS.search(value)
    if match:
        _fail(f"Field '{field}' contains control character {match.group()!r} at {match.start()}",
              field, 'no control characters', value)


def assert_length_greater_than(data: Any, field: str, minimum: int):
    value = _field(data, field)
    if not isinstance(value, (str, list)):
        _fail(f"Field '{field}' has no length", field, 'string or array', json_type_of(value))
    if not len(value) > minimum:
        _fail(f"Field '{field}' length {len(value)} is not greater than {minimum}",
              field, f"length > {minimum}", len(value))


# --- Array-wide rules -------------------------------------------------------

def assert_each_item_has_fields(data: Any, fields: Sequence[str]):
    for index, item in enumerate(assert_is_array(data)):
        for field in fields:
            if not json_validator.field_exists(item, field):
                _fail(f"Item {index} is missing field '{field}'",
                      f"[{index}].{field}", 'present', 'missing')


def assert_each_item_field_type(data: Any, field: str, expected_type: str):
    for index, item in enumerate(assert_is_array(data)):
        try:
            assert_field_type(item, field, expected_type)
        except ResponseAssertionError as e:
            _fail(f"Item {index}: {e.message}", f"[{index}].{field}", expected_type, e.actual)


def assert_each_item_positive_number(data: Any, field: str):
    for index, item in enumerate(assert_is_array(data)):
        try:
            assert_positive_number(item, field)
        except ResponseAssertionError as e:
            _fail(f"Item {index}: {e.message}", f"[{index}].{field}", '> 0', e.actual)


def assert_each_item_non_empty_string(data: Any, field: str):
    for index, item in enumerate(assert_is_array(data)):
        try:
            assert_non_empty_string(item, field)
        except ResponseAssertionError as e:
            _fail(f"Item {index}: {e.message}", f"[{index}].{field}", 'non-empty string', e.actual)


def item_values(data: Any, field: str) -> List[Any]:
    """The value of `field` for every array item, in order."""
    return [_field(item, field) for item in assert_is_array(data)]


def _hashable(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return repr(value)
    return (json_type_of(value), value)


def assert_each_item_unique(data: Any, field: str):
    values = item_values(data, field)
    unique = {_hashable(value) for value in values}
    if len(unique) != len(values):
        seen, duplicates = set(), []
        for value in values:
            key = _hashable(value)
            if key in seen and value not in duplicates:
                duplicates.append(value)
            seen.add(key)
        _fail(f"Field '{field}' has {len(values) - len(unique)} duplicate values: {duplicates}",
              field, f"{len(values)} unique values", len(unique), duplicates=duplicates)


def assert_sorted(data: Any, field: str, order: str):
    """Non-strict order by adjacent pairs; numbers with numbers, strings with strings."""
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order '{order}', expected one of {SORT_ORDERS}")
    values = item_values(data, field)
    for index in range(len(values) - 1):
        current, following = values[index], values[index + 1]
        if json_type_of(current) != json_type_of(following) or \
                json_type_of(current) not in ('number', 'string'):
            _fail(f"Items {index} and {index + 1} field '{field}' are not comparable: "
                  f"{current!r}, {following!r}", f"[{index}].{field}", order, [current, following])
        in_order = current <= following if order == 'ascending' else current >= following
        if not in_order:
            _fail(f"Array is not sorted by '{field}' in {order} order at index {index}: "
                  f"{current!r} then {following!r}", f"[{index}].{field}", order,
                  [current, following])


def assert_foreign_keys_resolve(data: Any, field: str, resolve: Callable[[Any], int]):
    """
    Every item's `field` must resolve to an existing resource.

    `resolve` receives the field value and returns the status code of the
    lookup; anything but 200 fails. One lookup per item.
    """
    for index, value in enumerate(item_values(data, field)):
        status = resolve(value)
        if status != 200:
            _fail(f"Item {index}: foreign key '{field}'={value!r} did not resolve (status {status})",
                  f"[{index}].{field}", 200, status)


def assert_no_stored_values(data: Any, stored: Any, id_field: str = 'id'):
    """No item identifier may appear in the stored collection."""
    if not isinstance(stored, list):
        _fail("Stored value is not a list of identifiers", id_field, 'array', json_type_of(stored))
    stored_keys = {_hashable(value) for value in stored}
    overlap = [value for value in item_values(data, id_field) if _hashable(value) in stored_keys]
    if overlap:
        _fail(f"Response still contains stored '{id_field}' values: {overlap}",
              id_field, 'no overlap', overlap)


# --- Headers ----------------------------------------------------------------

def assert_header_present(response: ResponseSnapshot, name: str):
    if response.header(name) is None:
        _fail(f"Header '{name}' not found in response headers", f"header:{name}", 'present',
              sorted(response.headers.keys()))


def assert_header_contains(response: ResponseSnapshot, name: str, expected: str):
    actual = response.header(name)
    if actual is None or expected not in actual:
        _fail(f"Header '{name}' does not contain '{expected}'. Actual: {actual!r}",
              f"header:{name}", expected, actual)


# --- Timing and size --------------------------------------------------------

def assert_response_time_below(elapsed_ms: float, max_ms: float):
    if not elapsed_ms < max_ms:
        _fail(f"Response time {elapsed_ms:.2f}ms exceeds limit of {max_ms}ms",
              'elapsed_ms', f"< {max_ms}", round(elapsed_ms, 2))


def assert_response_time_within(elapsed_ms: float, baseline_ms: Any, percentage: float):
    if not _is_number(baseline_ms):
        _fail("Stored baseline is not a number of milliseconds", 'elapsed_ms', 'number', baseline_ms)
    allowed = baseline_ms * (percentage / 100)
    if not elapsed_ms < allowed:
        _fail(f"Response time {elapsed_ms:.2f}ms is not within {percentage}% of "
              f"baseline {baseline_ms:.2f}ms (limit {allowed:.2f}ms)",
              'elapsed_ms', f"< {allowed:.2f}", round(elapsed_ms, 2))


def assert_payload_size_below(response: ResponseSnapshot, max_kb: float):
    size_kb = response.size_bytes / 1024
    if not size_kb < max_kb:
        _fail(f"Response payload is {size_kb:.2f}KB, limit is {max_kb}KB",
              'body.size', f"< {max_kb}KB", round(size_kb, 2))


# --- Cross-response consistency ---------------------------------------------

def assert_all_status(responses: Sequence[ResponseSnapshot], expected: int):
    if not responses:
        _fail("No batch responses were captured", 'status', expected, [])
    statuses = [response.status_code for response in responses]
    if any(status != expected for status in statuses):
        _fail(f"Not all responses returned {expected}: {statuses}", 'status', expected, statuses)


def assert_consistent_structure(responses: Sequence[ResponseSnapshot]):
    if not responses:
        _fail("No batch responses were captured", 'body', 'same keys', [])
    first_keys = json_validator.top_level_keys(responses[0].json)
    for index, response in enumerate(responses[1:], start=1):
        keys = json_validator.top_level_keys(response.json)
        if keys != first_keys:
            _fail(f"Response {index} has a different structure from response 0",
                  'body', first_keys, keys)


# --- Schema -----------------------------------------------------------------

def assert_matches_schema(data: Any, schema: Mapping[str, Any]):
    result = json_validator.validate(data, dict(schema))
    if not result['valid']:
        _fail(f"Schema validation failed: {result['errors']}", result['errors'][0]['path'],
              'schema match', result['errors'][0]['message'], errors=result['errors'])
