"""IndexesCommand - Index-scoped access to the Meilisearch REST API.

Each method picks an HTTP verb, a sub-path under /indexes/{index_uid} and a
JSON payload, then hands the request to the Connection. Routes are built fresh
for every call. Required arguments are checked before any request is sent.

Return values follow the Connection contract: decoded JSON on success,
NOT_FOUND on 404. Transport errors propagate unchanged.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Sequence

from meilirecord.connection import MeilisearchError

if TYPE_CHECKING:
    from meilirecord.connection import Connection


ROUTE_INDEXES = "indexes"
ROUTE_DOCUMENTS = "documents"
ROUTE_DELETE_BATCH = "delete-batch"
ROUTE_SEARCH = "search"
ROUTE_TASKS = "tasks"
ROUTE_SETTINGS = "settings"
ROUTE_STATS = "stats"

# Settings sub-resources, each with its own get/update/reset route.
SETTINGS_ROUTES: tuple[str, ...] = (
    "displayed-attributes",
    "distinct-attribute",
    "filterable-attributes",
    "ranking-rules",
    "searchable-attributes",
    "sortable-attributes",
    "stop-words",
    "synonyms",
    "typo-tolerance",
)


class InvalidArgument(MeilisearchError, ValueError):
    """Raised when a required argument is empty. No request is sent."""


def _is_empty(value: Any) -> bool:
    # 0 is a valid document id and task uid
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _require(value: Any, name: str) -> None:
    if _is_empty(value):
        raise InvalidArgument(f"Argument {name} is empty")


def _encode(body: Any) -> str:
    """Serialize a payload as compact UTF-8 JSON."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


class IndexesCommand:
    """Commands for one index.

    Usage:
        movies = IndexesCommand(connection, "movies")
        movies.add_documents([{"id": 1, "title": "Batman"}], primary_key="id")
        movies.search({"q": "batman"})
    """

    def __init__(self, connection: Connection, index_uid: str) -> None:
        _require(index_uid, "index_uid")
        self.connection = connection
        self.index_uid = index_uid

    def __repr__(self) -> str:
        return f"IndexesCommand(index_uid={self.index_uid!r})"

    def _route(self, *segments: Any) -> list[Any]:
        return [ROUTE_INDEXES, self.index_uid, *segments]

    def _setting_route(self, name: str | None = None) -> list[Any]:
        if name is None:
            return self._route(ROUTE_SETTINGS)
        if name not in SETTINGS_ROUTES:
            raise InvalidArgument(
                f"Unknown settings sub-resource '{name}'. Available: {', '.join(SETTINGS_ROUTES)}"
            )
        return self._route(ROUTE_SETTINGS, name)

    # -------------------------------------------------------------------------
    # Index
    # -------------------------------------------------------------------------

    def get_info(self) -> Any:
        """Get information about the index."""
        return self.connection.get(self._route())

    def update(self, primary_key: str | None = None) -> Any:
        """Update the index's primary key."""
        body = {"primaryKey": primary_key} if primary_key else None
        return self.connection.put(self._route(), body=_encode(body))

    def delete(self) -> Any:
        """Delete the index."""
        return self.connection.delete(self._route())

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def get_document(self, document_id: str | int) -> Any:
        """Get one document by its primary key value.

        Returns NOT_FOUND if the document does not exist.
        """
        _require(document_id, "document_id")
        return self.connection.get(self._route(ROUTE_DOCUMENTS, document_id))

    def get_documents(self, params: dict[str, Any] | None = None) -> Any:
        """Get documents by batch. ``params`` become query parameters (offset, limit, ...)."""
        return self.connection.get(self._route(ROUTE_DOCUMENTS), params)

    def add_documents(
        self,
        documents: Sequence[dict[str, Any]],
        primary_key: str | None = None,
    ) -> Any:
        """Add or replace documents.

        Args:
            documents: Documents to store. Existing documents with the same
                primary key value are replaced entirely.
            primary_key: Primary key field, sent as a query option if given.

        Returns:
            The task summary returned by the server.
        """
        _require(documents, "documents")
        options = {"primaryKey": primary_key} if primary_key else None
        return self.connection.post(self._route(ROUTE_DOCUMENTS), options, _encode(list(documents)))

    def update_documents(
        self,
        documents: Sequence[dict[str, Any]],
        primary_key: str | None = None,
    ) -> Any:
        """Add or update documents. Fields not sent are kept on the server."""
        _require(documents, "documents")
        options = {"primaryKey": primary_key} if primary_key else None
        return self.connection.put(self._route(ROUTE_DOCUMENTS), options, _encode(list(documents)))

    def delete_all_documents(self) -> Any:
        return self.connection.delete(self._route(ROUTE_DOCUMENTS))

    def delete_document(self, document_id: str | int) -> Any:
        """Delete one document by its primary key value."""
        _require(document_id, "document_id")
        return self.connection.delete(self._route(ROUTE_DOCUMENTS, document_id))

    def delete_documents(self, document_ids: Sequence[str | int]) -> Any:
        """Delete a selection of documents by primary key values."""
        _require(document_ids, "document_ids")
        return self.connection.post(
            self._route(ROUTE_DOCUMENTS, ROUTE_DELETE_BATCH),
            body=_encode(list(document_ids)),
        )

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def search(self, query: dict[str, Any]) -> Any:
        """Search the index. ``query`` is the search body, e.g. {"q": "batman", "limit": 5}.

        An empty mapping is a valid placeholder search that matches everything.
        """
        if query is None:
            raise InvalidArgument("Argument query is empty")
        return self.connection.post(self._route(ROUTE_SEARCH), body=_encode(query))

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def get_tasks(self) -> Any:
        """List all tasks for the index."""
        return self.connection.get(self._route(ROUTE_TASKS))

    def get_task(self, task_uid: int | str) -> Any:
        """Get a single task of the index."""
        _require(task_uid, "task_uid")
        return self.connection.get(self._route(ROUTE_TASKS, task_uid))

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def get_settings(self) -> Any:
        return self.connection.get(self._setting_route())

    def update_settings(self, body: dict[str, Any]) -> Any:
        """Update any subset of the index settings in one call."""
        _require(body, "body")
        return self.connection.post(self._setting_route(), body=_encode(body))

    def reset_settings(self) -> Any:
        return self.connection.delete(self._setting_route())

    def get_setting(self, name: str) -> Any:
        """Get one settings sub-resource, e.g. "ranking-rules"."""
        return self.connection.get(self._setting_route(name))

    def update_setting(self, name: str, body: Any) -> Any:
        """Update one settings sub-resource."""
        route = self._setting_route(name)
        _require(body, "body")
        return self.connection.post(route, body=_encode(body))

    def reset_setting(self, name: str) -> Any:
        """Reset one settings sub-resource to its default value."""
        return self.connection.delete(self._setting_route(name))

    def get_displayed_attributes(self) -> Any:
        return self.get_setting("displayed-attributes")

    def update_displayed_attributes(self, attributes: list[str]) -> Any:
        return self.update_setting("displayed-attributes", attributes)

    def reset_displayed_attributes(self) -> Any:
        return self.reset_setting("displayed-attributes")

    def get_distinct_attribute(self) -> Any:
        return self.get_setting("distinct-attribute")

    def update_distinct_attribute(self, field_name: str) -> Any:
        return self.update_setting("distinct-attribute", field_name)

    def reset_distinct_attribute(self) -> Any:
        return self.reset_setting("distinct-attribute")

    def get_filterable_attributes(self) -> Any:
        return self.get_setting("filterable-attributes")

    def update_filterable_attributes(self, attributes: list[str]) -> Any:
        return self.update_setting("filterable-attributes", attributes)

    def reset_filterable_attributes(self) -> Any:
        return self.reset_setting("filterable-attributes")

    def get_ranking_rules(self) -> Any:
        return self.get_setting("ranking-rules")

    def update_ranking_rules(self, rules: list[str]) -> Any:
        """Ranking rules are sorted by order of importance."""
        return self.update_setting("ranking-rules", rules)

    def reset_ranking_rules(self) -> Any:
        return self.reset_setting("ranking-rules")

    def get_searchable_attributes(self) -> Any:
        return self.get_setting("searchable-attributes")

    def update_searchable_attributes(self, attributes: list[str]) -> Any:
        """Attributes are sorted from most to least important."""
        return self.update_setting("searchable-attributes", attributes)

    def reset_searchable_attributes(self) -> Any:
        return self.reset_setting("searchable-attributes")

    def get_sortable_attributes(self) -> Any:
        return self.get_setting("sortable-attributes")

    def update_sortable_attributes(self, attributes: list[str]) -> Any:
        return self.update_setting("sortable-attributes", attributes)

    def reset_sortable_attributes(self) -> Any:
        return self.reset_setting("sortable-attributes")

    def get_stop_words(self) -> Any:
        return self.get_setting("stop-words")

    def update_stop_words(self, words: list[str]) -> Any:
        return self.update_setting("stop-words", words)

    def reset_stop_words(self) -> Any:
        return self.reset_setting("stop-words")

    def get_synonyms(self) -> Any:
        return self.get_setting("synonyms")

    def update_synonyms(self, synonyms: dict[str, list[str]]) -> Any:
        """``synonyms`` maps a word to the words it is interchangeable with."""
        return self.update_setting("synonyms", synonyms)

    def reset_synonyms(self) -> Any:
        return self.reset_setting("synonyms")

    def get_typo_tolerance(self) -> Any:
        return self.get_setting("typo-tolerance")

    def update_typo_tolerance(self, tolerance: dict[str, Any]) -> Any:
        return self.update_setting("typo-tolerance", tolerance)

    def reset_typo_tolerance(self) -> Any:
        return self.reset_setting("typo-tolerance")

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> Any:
        return self.connection.get(self._route(ROUTE_STATS))
