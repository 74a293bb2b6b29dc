"""
Unit tests for the per-scenario variable store.
"""
import pytest

from scenario.variable_store import VariableStore, canonical_json
from utils.custom_exceptions import MissingVariableError


class TestVariableStore:
    """Get/set, substitution and snapshot comparison."""

    def setup_method(self):
        self.store = VariableStore()

    def test_get_returns_last_value_set(self):
        self.store.set("postId", 1)
        self.store.set("postId", 101)

        assert self.store.get("postId") == 101
        assert "postId" in self.store
        assert len(self.store) == 1

    def test_get_unknown_name_raises(self):
        self.store.set("known", "value")

        with pytest.raises(MissingVariableError) as exc_info:
            self.store.get("unknown")

        assert exc_info.value.name == "unknown"
        assert exc_info.value.details["stored"] == ["known"]

    def test_stored_none_is_not_missing(self):
        self.store.set("nothing", None)
        assert self.store.get("nothing") is None

    def test_clear_forgets_everything(self):
        self.store.set("a", 1)
        self.store.clear()

        assert len(self.store) == 0
        with pytest.raises(MissingVariableError):
            self.store.get("a")

    def test_substitute_replaces_placeholders(self):
        self.store.set("userId", 3)
        self.store.set("postId", 42)

        assert self.store.substitute("/users/{userId}/posts/{postId}") == "/users/3/posts/42"

    def test_substitute_without_placeholders_is_identity(self):
        assert self.store.substitute("/posts?_limit=5") == "/posts?_limit=5"

    def test_substitute_unknown_placeholder_raises(self):
        with pytest.raises(MissingVariableError):
            self.store.substitute("/posts/{createdPostId}")

    def test_snapshot_ignores_key_order(self):
        self.store.store_snapshot("first", {"id": 1, "title": "a", "tags": [1, 2]})

        assert self.store.matches_snapshot("first", {"tags": [1, 2], "title": "a", "id": 1})
        assert not self.store.matches_snapshot("first", {"id": 1, "title": "b", "tags": [1, 2]})

    def test_snapshot_array_order_matters(self):
        self.store.store_snapshot("list", [1, 2, 3])
        assert not self.store.matches_snapshot("list", [3, 2, 1])

    def test_canonical_json_is_compact_and_sorted(self):
        assert canonical_json({"b": 1, "a": [True, None]}) == '{"a":[true,null],"b":1}'

    def test_iteration_yields_names(self):
        self.store.set("one", 1)
        self.store.set("two", 2)
        assert sorted(self.store) == ["one", "two"]
