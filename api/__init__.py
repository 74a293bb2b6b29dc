"""
HTTP client, response snapshots and response assertions.
"""
from .response_snapshot import ResponseSnapshot
from .rest_client import RestClient
from .json_validator import JsonValidator, json_validator

__all__ = [
    'ResponseSnapshot',
    'RestClient',
    'JsonValidator',
    'json_validator'
]
