"""
Per-scenario state shared by the step handlers.
"""
import base64
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from api.response_snapshot import ResponseSnapshot
from scenario.variable_store import VariableStore
from utils.config_loader import ApiConfig
from utils.custom_exceptions import MissingCredentialsError, NoResponseError
from utils.logger import test_logger


@dataclass(frozen=True)
class BearerToken:
    token: str
    style = 'bearer token'

    def headers(self) -> Dict[str, str]:
        return {'Authorization': f'Bearer {self.token}'}


@dataclass(frozen=True)
class ApiKey:
    key: str
    style = 'API key'

    def headers(self) -> Dict[str, str]:
        return {'X-API-Key': self.key}


@dataclass(frozen=True)
class BasicAuth:
    username: str
    password: str
    style = 'basic auth'

    def headers(self) -> Dict[str, str]:
        encoded = base64.b64encode(f'{self.username}:{self.password}'.encode('utf-8')).decode('ascii')
        return {'Authorization': f'Basic {encoded}'}


Credentials = Union[BearerToken, ApiKey, BasicAuth]


def coerce_table_value(value: str) -> Any:
    """
    Convert a data-table cell for a request body.

    Cells that parse as a finite number become int or float, everything else
    stays a string. Wrap a cell in double quotes ("02139") to keep a
    numeric-looking value as text.
    """
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    text = value.strip()
    if not text or '_' in text:
        return value
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return value
    return number if math.isfinite(number) else value


def rows_to_payload(rows: Sequence[Sequence[str]]) -> Dict[str, Any]:
    """Key/value table rows -> request body; the first two cells of each row are used."""
    payload = {}
    for row in rows:
        if len(row) < 2:
            raise ValueError(f"Data table row needs a key and a value: {list(row)}")
        payload[row[0]] = coerce_table_value(row[1])
    return payload


@dataclass
class ScenarioContext:
    """
    Mutable state owned by exactly one running scenario.

    `response` is replaced wholesale by every request; `pending_request` is
    replaced wholesale by every data-table step.
    """
    client: Any
    step_timeout: float = 30
    response: Optional[ResponseSnapshot] = None
    pending_request: Dict[str, Any] = field(default_factory=dict)
    auth: Optional[Credentials] = None
    variables: VariableStore = field(default_factory=VariableStore)

    @classmethod
    def create(cls, api_config: ApiConfig,
               client_factory: Optional[Callable[[ApiConfig], Any]] = None) -> 'ScenarioContext':
        """Fresh context with its own HTTP client."""
        if client_factory is None:
            from api.rest_client import RestClient
            client_factory = RestClient
        return cls(client=client_factory(api_config), step_timeout=api_config.step_timeout)

    @property
    def current_response(self) -> ResponseSnapshot:
        if self.response is None:
            raise NoResponseError()
        return self.response

    @property
    def body(self) -> Any:
        """Parsed JSON body of the current response."""
        return self.current_response.json

    def set_pending_request(self, rows: Sequence[Sequence[str]]):
        # cleared even when the table turns out to be malformed
        self.pending_request = {}
        self.pending_request = rows_to_payload(rows)
        test_logger.debug(f"Pending request body: {self.pending_request}")

    def use_credentials(self, credentials: Credentials):
        self.auth = credentials
        test_logger.debug(f"Active credentials: {credentials.style}")

    def auth_headers(self, style: type) -> Dict[str, str]:
        """Headers for the requested auth style, which must be the active one."""
        if not isinstance(self.auth, style):
            raise MissingCredentialsError(style.style, self.auth.style if self.auth else None)
        return self.auth.headers()

    def send(self, method: str, endpoint: str, headers: Optional[Dict[str, str]] = None,
             json_data: Any = None) -> ResponseSnapshot:
        """Substitute stored variables into the endpoint, send, and make the result current."""
        path = self.variables.substitute(endpoint)
        self.response = self.client.request(method, path, headers=headers, json_data=json_data)
        return self.response

    def send_batch(self, count: int, method: str, endpoint: str) -> List[ResponseSnapshot]:
        """Send `count` requests one after another; the current response is untouched."""
        path = self.variables.substitute(endpoint)
        return [self.client.request(method, path) for _ in range(count)]

    def close(self):
        close = getattr(self.client, 'close', None)
        if close is not None:
            close()
