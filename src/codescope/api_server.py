"""
HTTP API for CodeScope.

Exposes the service operations as JSON endpoints:

- ``POST /index`` index a codebase
- ``POST /search`` search a collection
- ``GET /status`` report operations and counters
- ``DELETE /index`` clear a collection

"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from codescope import __version__
from codescope.errors import CodeScopeError, SearchError, SearchTimeoutError

if TYPE_CHECKING:
	from codescope.service import CodeSearchService

logger = logging.getLogger(__name__)

UPSTREAM_KINDS = frozenset({"Embedding", "VectorStore"})


class IndexRequest(BaseModel):
	"""Request body for ``POST /index``."""

	path: str = Field(min_length=1)
	collection: str | None = None
	force: bool = False


class IndexResponse(BaseModel):
	"""Response body for ``POST /index``."""

	performed: bool
	files_changed: int
	chunks_indexed: int
	failures: int
	skipped_reason: str | None = None
	cancelled: bool = False


class SearchRequest(BaseModel):
	"""Request body for ``POST /search``."""

	query: str
	limit: int | None = None
	collection: str | None = None


class SearchResultModel(BaseModel):
	"""One search hit."""

	id: str
	file_path: str
	start_line: int
	content: str
	score: float
	metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
	"""Response body for ``POST /search``."""

	results: list[SearchResultModel]


class ClearResponse(BaseModel):
	"""Response body for ``DELETE /index``."""

	collection: str
	existed: bool


class ErrorResponse(BaseModel):
	"""Model for standardized error responses."""

	error: str
	detail: str


def status_code_for(error: CodeScopeError) -> int:
	"""Map an error to the HTTP status returned to clients."""
	if isinstance(error, SearchTimeoutError):
		return status.HTTP_504_GATEWAY_TIMEOUT
	kind = error.cause if isinstance(error, SearchError) else error.kind
	if kind == "NotFound":
		return status.HTTP_404_NOT_FOUND
	if kind == "InvalidArgument":
		return status.HTTP_400_BAD_REQUEST
	if kind in UPSTREAM_KINDS:
		return status.HTTP_502_BAD_GATEWAY
	return status.HTTP_500_INTERNAL_SERVER_ERROR


class APIServer:
	"""FastAPI application around a :class:`CodeSearchService`."""

	def __init__(self, service: CodeSearchService, host: str = "127.0.0.1", port: int = 8765) -> None:
		"""
		Initialize the API server.

		Args:
		    service: The service to expose.
		    host: Hostname or IP address to bind to.
		    port: Port number to listen on.

		"""
		self.service = service
		self.host = host
		self.port = port
		self.app = self._create_app()
		self.server: uvicorn.Server | None = None
		self.server_thread: threading.Thread | None = None

	def _create_app(self) -> FastAPI:
		app = FastAPI(
			title="CodeScope API",
			description="Semantic code indexing and hybrid search",
			version=__version__,
		)
		service = self.service

		@app.exception_handler(CodeScopeError)
		async def codescope_error_handler(_request: Request, exc: CodeScopeError) -> JSONResponse:
			"""Translate service errors into status codes."""
			code = status_code_for(exc)
			if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
				logger.warning(f"Request failed with {exc.kind}: {exc}")
			return JSONResponse(status_code=code, content={"error": exc.kind, "detail": str(exc)})

		@app.exception_handler(Exception)
		async def general_exception_handler(_request: Request, _exc: Exception) -> JSONResponse:
			"""Handle unexpected exceptions."""
			logger.exception("Unexpected error")
			return JSONResponse(
				status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
				content={"error": "Internal", "detail": "An unexpected error occurred"},
			)

		@app.get("/health")
		async def health_check() -> dict[str, str]:
			return {"status": "ok", "version": __version__}

		@app.post("/index", response_model=IndexResponse, responses={404: {"model": ErrorResponse}})
		async def index_codebase(request: IndexRequest) -> dict[str, Any]:
			result = await service.index_codebase(request.path, request.collection, force=request.force)
			return result.to_dict()

		@app.post("/search", response_model=SearchResponse, responses={400: {"model": ErrorResponse}})
		async def search_code(request: SearchRequest) -> dict[str, Any]:
			results = await service.search_code(request.query, request.limit, request.collection)
			return {"results": [result.to_dict() for result in results]}

		@app.get("/status")
		async def get_status(collection: str | None = None) -> dict[str, Any]:
			return await service.get_indexing_status(collection)

		@app.delete("/index", response_model=ClearResponse)
		async def clear_index(collection: str | None = None) -> dict[str, Any]:
			existed = await service.clear_index(collection)
			return {"collection": collection or service.default_collection, "existed": existed}

		logger.debug("Created FastAPI application with %d routes", len(app.routes))
		return app

	def _config(self) -> uvicorn.Config:
		return uvicorn.Config(app=self.app, host=self.host, port=self.port, log_level="info")

	def serve(self) -> None:
		"""Run the server in the current thread until interrupted."""
		logger.info("Starting API server on %s:%d", self.host, self.port)
		self.server = uvicorn.Server(self._config())
		self.server.run()

	def start(self) -> None:
		"""
		Start the API server in a background thread.

		Raises:
		    RuntimeError: If the server is already started

		"""
		if self.server_thread and self.server_thread.is_alive():
			msg = "API server is already running"
			raise RuntimeError(msg)
		logger.info("Starting API server on %s:%d", self.host, self.port)
		self.server = uvicorn.Server(self._config())
		self.server_thread = threading.Thread(target=self.server.run, daemon=True)
		self.server_thread.start()

	def stop(self) -> None:
		"""
		Stop a server started with :meth:`start`.

		Raises:
		    RuntimeError: If the server is not running

		"""
		if not self.server_thread or not self.server_thread.is_alive():
			msg = "API server is not running"
			raise RuntimeError(msg)
		logger.info("Stopping API server")
		if self.server:
			self.server.should_exit = True
		self.server_thread.join(timeout=5.0)
		if self.server_thread.is_alive():
			logger.warning("API server thread did not stop within 5 seconds")
