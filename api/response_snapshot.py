"""
Immutable capture of one HTTP response.
"""
import json
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Mapping, Optional

from requests.structures import CaseInsensitiveDict

from utils.custom_exceptions import ResponseAssertionError


@dataclass(frozen=True)
class ResponseSnapshot:
    """
    Status, headers and body of a response, captured once.

    The body is kept as text and parsed to JSON on first access. Header
    lookups are case-insensitive.
    """
    status_code: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    text: str = ''
    elapsed_ms: float = 0.0
    method: str = 'GET'
    url: str = ''

    def __post_init__(self):
        if not isinstance(self.headers, CaseInsensitiveDict):
            object.__setattr__(self, 'headers', CaseInsensitiveDict(self.headers or {}))

    @classmethod
    def from_response(cls, response, elapsed_ms: float) -> 'ResponseSnapshot':
        """Build a snapshot from a `requests.Response`."""
        return cls(
            status_code=response.status_code,
            headers=CaseInsensitiveDict(response.headers),
            text=response.text,
            elapsed_ms=elapsed_ms,
            method=response.request.method if response.request is not None else 'GET',
            url=response.url
        )

    @cached_property
    def json(self) -> Any:
        """Parsed JSON body; fails with a response assertion if the body is not JSON."""
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as e:
            raise ResponseAssertionError(
                f"Response body is not valid JSON: {e}",
                field='body', expected='JSON document', actual=self.text[:200]
            )

    @property
    def size_bytes(self) -> int:
        """UTF-8 byte length of the body."""
        return len(self.text.encode('utf-8'))

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def __repr__(self):
        return (f"ResponseSnapshot({self.method} {self.url} -> {self.status_code}, "
                f"{self.size_bytes} bytes, {self.elapsed_ms:.1f}ms)")
