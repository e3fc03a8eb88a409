"""
Pydantic schema for CodeScope configuration.

Every section has defaults, so an empty config file (or none at all) yields a
working setup: a local sentence-transformers model and an in-memory vector
store persisted under the data directory.

"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from xdg.BaseDirectory import xdg_data_home


class EmbeddingSchema(BaseModel):
	"""Embedding provider settings."""

	provider: Literal["null", "sentence-transformers", "litellm"] = "sentence-transformers"
	model: str = "sentence-transformers/all-MiniLM-L6-v2"
	dimensions: int | None = Field(default=None, gt=0)
	api_key: str | None = None
	api_base: str | None = None
	device: str | None = None
	batch_size: int = Field(default=64, gt=0)
	retry_count: int = Field(default=3, ge=0)
	timeout: float = Field(default=30.0, gt=0)


class VectorStoreSchema(BaseModel):
	"""Vector store settings."""

	provider: Literal["memory", "milvus"] = "memory"
	collection: str = "codescope"
	metric: Literal["cosine", "dot", "euclidean"] = "cosine"
	uri: str | None = None
	token: str | None = None
	persist: bool = True


class HybridSearchSchema(BaseModel):
	"""Weights used to fuse semantic and lexical scores."""

	enabled: bool = True
	bm25_weight: float = Field(default=0.4, ge=0.0)
	semantic_weight: float = Field(default=0.6, ge=0.0)


class BM25Schema(BaseModel):
	"""BM25 scoring parameters."""

	k1: float = Field(default=1.2, ge=0.0)
	b: float = Field(default=0.75, ge=0.0, le=1.0)
	min_token_length: int = Field(default=2, ge=0)


class SyncSchema(BaseModel):
	"""Incremental sync settings."""

	interval: float = Field(default=300.0, gt=0)
	debounce: float = Field(default=60.0, ge=0)
	use_content_hash: bool = False
	max_workers: int = Field(default=4, gt=0)
	watch_debounce: float = Field(default=2.0, ge=0)


class ChunkingSchema(BaseModel):
	"""Chunker limits."""

	min_chunk_size: int | None = Field(default=None, ge=0)
	max_chunk_size: int = Field(default=8192, gt=0)
	min_lines: int = Field(default=2, ge=1)
	max_chunks_per_file: int = Field(default=500, gt=0)


class SearchSchema(BaseModel):
	"""Query pipeline settings."""

	default_limit: int = Field(default=10, ge=1, le=1000)
	timeout: float = Field(default=30.0, gt=0)


class ServerSchema(BaseModel):
	"""HTTP server settings."""

	host: str = "127.0.0.1"
	port: int = Field(default=8765, gt=0, lt=65536)


class AppConfigSchema(BaseModel):
	"""Top-level CodeScope configuration."""

	data_dir: Path = Field(default_factory=lambda: Path(xdg_data_home) / "codescope")
	embedding: EmbeddingSchema = Field(default_factory=EmbeddingSchema)
	vector_store: VectorStoreSchema = Field(default_factory=VectorStoreSchema)
	hybrid_search: HybridSearchSchema = Field(default_factory=HybridSearchSchema)
	bm25: BM25Schema = Field(default_factory=BM25Schema)
	sync: SyncSchema = Field(default_factory=SyncSchema)
	chunking: ChunkingSchema = Field(default_factory=ChunkingSchema)
	search: SearchSchema = Field(default_factory=SearchSchema)
	server: ServerSchema = Field(default_factory=ServerSchema)

	@field_validator("data_dir")
	@classmethod
	def _expand_data_dir(cls, value: Path) -> Path:
		return value.expanduser()
