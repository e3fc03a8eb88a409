"""Tests for the HTTP API."""

from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from conftest import FailingEmbeddingClient
from fastapi.testclient import TestClient

from codescope.api_server import APIServer, status_code_for
from codescope.errors import (
	CodeScopeError,
	EmbeddingError,
	InvalidArgumentError,
	IoError,
	NotFoundError,
	SearchError,
	SearchTimeoutError,
	VectorStoreError,
)
from codescope.service import CodeSearchService


@pytest.fixture
def client(service: CodeSearchService) -> Iterator[TestClient]:
	"""Test client for an API server around the default test service."""
	with TestClient(APIServer(service).app) as test_client:
		yield test_client


@pytest.mark.unit
@pytest.mark.parametrize(
	("error", "expected"),
	[
		(NotFoundError("x"), 404),
		(InvalidArgumentError("x"), 400),
		(EmbeddingError("x"), 502),
		(VectorStoreError("x"), 502),
		(IoError("x"), 500),
		(CodeScopeError("x"), 500),
		(SearchError("x", cause="Embedding"), 502),
		(SearchError("x", cause="InvalidArgument"), 400),
		(SearchError("x"), 500),
		(SearchTimeoutError("x"), 504),
	],
)
def test_status_code_for(error: CodeScopeError, expected: int) -> None:
	"""Error kinds map to HTTP status codes."""
	assert status_code_for(error) == expected


@pytest.mark.unit
class TestEndpoints:
	"""Tests for the JSON endpoints."""

	def test_health(self, client: TestClient) -> None:
		"""The health endpoint reports the version."""
		response = client.get("/health")

		assert response.status_code == 200
		assert response.json()["status"] == "ok"

	def test_index_search_status_clear(self, client: TestClient, codebase: Path) -> None:
		"""The four operations work end to end."""
		indexed = client.post("/index", json={"path": str(codebase)})
		assert indexed.status_code == 200
		assert indexed.json()["chunks_indexed"] == 2
		assert indexed.json()["performed"] is True

		searched = client.post("/search", json={"query": "foo", "limit": 5})
		assert searched.status_code == 200
		results = searched.json()["results"]
		assert results[0]["content"] == "fn foo() { }"
		assert results[0]["file_path"] == "a.rs"

		status = client.get("/status")
		assert status.status_code == 200
		assert status.json()["vector_count"] == 2

		cleared = client.delete("/index")
		assert cleared.json() == {"collection": "codescope", "existed": True}
		assert client.delete("/index").json()["existed"] is False

	def test_debounced_index(self, client: TestClient, codebase: Path) -> None:
		"""A debounced request succeeds without doing work."""
		client.post("/index", json={"path": str(codebase)})

		response = client.post("/index", json={"path": str(codebase)})

		assert response.status_code == 200
		assert response.json()["performed"] is False
		assert response.json()["skipped_reason"] == "debounced"

	def test_missing_path(self, client: TestClient, tmp_path: Path) -> None:
		"""Unknown codebase paths return 404."""
		response = client.post("/index", json={"path": str(tmp_path / "absent")})

		assert response.status_code == 404
		assert response.json()["error"] == "NotFound"

	def test_empty_path_fails_validation(self, client: TestClient) -> None:
		"""Request bodies are validated."""
		assert client.post("/index", json={"path": ""}).status_code == 422

	@pytest.mark.parametrize("body", [{"query": "  "}, {"query": "foo", "limit": 0}, {"query": "foo", "collection": "a-b"}])
	def test_invalid_search(self, client: TestClient, body: dict) -> None:
		"""Invalid search arguments return 400."""
		response = client.post("/search", json=body)

		assert response.status_code == 400
		assert response.json()["error"] == "InvalidArgument"

	def test_search_missing_collection(self, client: TestClient) -> None:
		"""Searching a collection that does not exist returns no results."""
		response = client.post("/search", json={"query": "foo", "collection": "absent"})

		assert response.status_code == 200
		assert response.json() == {"results": []}


@pytest.mark.unit
class TestErrorHandling:
	"""Tests for upstream and unexpected failures."""

	def test_embedding_failure_is_bad_gateway(
		self, make_service: Callable[..., CodeSearchService], codebase: Path
	) -> None:
		"""A provider failure during search returns 502."""
		service = make_service(embedding_client=FailingEmbeddingClient({2}))

		with TestClient(APIServer(service).app) as client:
			client.post("/index", json={"path": str(codebase)})
			response = client.post("/search", json={"query": "foo"})

		assert response.status_code == 502
		assert response.json()["error"] == "Search"
		assert "provider unavailable" in response.json()["detail"]

	def test_unexpected_error(self, service: CodeSearchService) -> None:
		"""Unexpected exceptions return a generic 500."""
		service.get_indexing_status = AsyncMock(side_effect=RuntimeError("boom"))

		with TestClient(APIServer(service).app, raise_server_exceptions=False) as client:
			response = client.get("/status")

		assert response.status_code == 500
		assert response.json() == {"error": "Internal", "detail": "An unexpected error occurred"}


@pytest.mark.unit
class TestServerLifecycle:
	"""Tests for the background server thread guards."""

	def test_stop_without_start(self, service: CodeSearchService) -> None:
		"""Stopping a server that is not running is an error."""
		with pytest.raises(RuntimeError, match="not running"):
			APIServer(service).stop()

	def test_settings(self, service: CodeSearchService) -> None:
		"""Host and port are kept for uvicorn."""
		server = APIServer(service, host="0.0.0.0", port=9000)

		assert (server.host, server.port) == ("0.0.0.0", 9000)
		assert server.server is None
