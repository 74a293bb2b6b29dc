"""
Values captured by one scenario for use in its later steps.
"""
import json
import re
from typing import Any, Dict, Iterator

from utils.custom_exceptions import MissingVariableError
from utils.logger import test_logger


PLACEHOLDER = re.compile(r'\{([A-Za-z_][A-Za-z0-9_]*)\}')


def canonical_json(data: Any) -> str:
    """Serialization used for whole-response comparisons."""
    return json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False)


class VariableStore:
    """
    Name -> value mapping scoped to a single scenario.

    Reading a name that was never stored raises MissingVariableError so a
    comparison can never run against an undefined value.
    """

    def __init__(self):
        self._values: Dict[str, Any] = {}

    def set(self, name: str, value: Any):
        self._values[name] = value
        test_logger.debug(f"Stored '{name}' = {value!r}")

    def get(self, name: str) -> Any:
        try:
            return self._values[name]
        except KeyError:
            raise MissingVariableError(name, stored=sorted(self._values)) from None

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def clear(self):
        self._values.clear()

    def store_snapshot(self, name: str, data: Any):
        """Store a decoded JSON body in canonical serialized form."""
        self.set(name, canonical_json(data))

    def matches_snapshot(self, name: str, data: Any) -> bool:
        return self.get(name) == canonical_json(data)

    def substitute(self, template: str) -> str:
        """
        Replace every `{name}` with the stored value's string form.

        Raises:
            MissingVariableError: a placeholder names a variable never stored
        """
        def replace(match):
            return str(self.get(match.group(1)))

        return PLACEHOLDER.sub(replace, template)
