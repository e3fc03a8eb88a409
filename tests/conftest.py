"""Global test fixtures and configuration."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
import yaml

from codescope.config.config_schema import AppConfigSchema
from codescope.errors import EmbeddingError
from codescope.processor.embedding.base import EmbeddingClient
from codescope.processor.models import Embedding
from codescope.processor.storage import InMemoryVectorStore
from codescope.service import CodeSearchService

DEFAULT_VOCABULARY = ("foo", "bar", "baz", "parse", "config", "http", "server", "token", "vector", "search")


class KeywordEmbeddingClient(EmbeddingClient):
	"""
	Deterministic embeddings for tests.

	Each dimension counts one vocabulary word; a final constant dimension keeps
	every vector non-zero. Texts sharing words are therefore cosine-similar.

	"""

	def __init__(self, vocabulary: Sequence[str] = DEFAULT_VOCABULARY) -> None:
		self.vocabulary = tuple(vocabulary)
		self.calls: list[list[str]] = []

	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		self.calls.append(list(texts))
		embeddings = []
		for text in texts:
			words = re.findall(r"[a-z]+", text.lower())
			vector = [float(words.count(word)) for word in self.vocabulary] + [1.0]
			embeddings.append(Embedding(vector=vector, model="keyword", dimensions=len(vector)))
		return embeddings

	def dimensions(self) -> int:
		return len(self.vocabulary) + 1

	def provider_name(self) -> str:
		return "keyword"


class FailingEmbeddingClient(KeywordEmbeddingClient):
	"""Keyword client that raises on selected calls (1-based)."""

	def __init__(self, fail_on: set[int], error: Exception | None = None) -> None:
		super().__init__()
		self.fail_on = fail_on
		self.error = error or EmbeddingError("provider unavailable")

	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		if len(self.calls) + 1 in self.fail_on:
			self.calls.append(list(texts))
			raise self.error
		return await super().embed_batch(texts)


class FakeClock:
	"""Manually advanced monotonic clock."""

	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
	"""A clock that only moves when told to."""
	return FakeClock()


@pytest.fixture
def keyword_client() -> KeywordEmbeddingClient:
	"""Deterministic keyword embedding client."""
	return KeywordEmbeddingClient()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfigSchema:
	"""Configuration with an isolated data directory and chunking limits relaxed for tiny fixtures."""
	return AppConfigSchema(
		data_dir=tmp_path / "data",
		embedding={"provider": "null", "dimensions": 16, "batch_size": 64},
		vector_store={"provider": "memory", "persist": False},
		sync={"debounce": 60.0},
		chunking={"min_chunk_size": 0, "min_lines": 1},
	)


@pytest.fixture
def make_service(
	app_config: AppConfigSchema, keyword_client: KeywordEmbeddingClient, fake_clock: FakeClock
) -> Callable[..., CodeSearchService]:
	"""Factory for services backed by an in-memory store and the keyword client."""

	def factory(**overrides: object) -> CodeSearchService:
		options: dict[str, object] = {
			"embedding_client": keyword_client,
			"vector_store": InMemoryVectorStore(),
			"clock": fake_clock,
		}
		options.update(overrides)
		return CodeSearchService(app_config, **options)  # type: ignore[arg-type]

	return factory


@pytest.fixture
def service(make_service: Callable[..., CodeSearchService]) -> CodeSearchService:
	"""A service with default test wiring."""
	return make_service()


@pytest.fixture
def codebase(tmp_path: Path) -> Path:
	"""Directory holding the single Rust file used by the end-to-end scenarios."""
	root = tmp_path / "r"
	root.mkdir()
	(root / "a.rs").write_text("fn foo() { }\nfn bar() { }\n")
	return root


def write_files(root: Path, files: dict[str, str]) -> None:
	"""Create files under ``root``, making parent directories as needed."""
	for relative, content in files.items():
		path = root / relative
		path.parent.mkdir(parents=True, exist_ok=True)
		path.write_text(content)


@pytest.fixture
def cli_config_file(tmp_path: Path) -> Path:
	"""Config file for CLI and API tests: null embeddings and a persisted in-memory store under ``tmp_path``."""
	config_file = tmp_path / "codescope.yml"
	config_file.write_text(
		yaml.dump(
			{
				"data_dir": str(tmp_path / "data"),
				"embedding": {"provider": "null", "dimensions": 8},
				"vector_store": {"provider": "memory", "persist": True},
				"chunking": {"min_chunk_size": 0, "min_lines": 1},
			}
		)
	)
	return config_file
