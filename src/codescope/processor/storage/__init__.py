"""Vector store port and adapters."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from codescope.errors import InvalidArgumentError
from codescope.processor.storage.base import DistanceMetric, VectorStore
from codescope.processor.storage.memory import InMemoryVectorStore

if TYPE_CHECKING:
	from codescope.config.config_schema import VectorStoreSchema

__all__ = ["DistanceMetric", "InMemoryVectorStore", "VectorStore", "create_vector_store"]


def create_vector_store(config: VectorStoreSchema, data_dir: Path) -> VectorStore:
	"""
	Build the vector store named by the configuration.

	Args:
	    config: Vector store settings.
	    data_dir: CodeScope data directory, used for local persistence.

	Raises:
	    InvalidArgumentError: If the provider is unknown.

	"""
	metric = DistanceMetric(config.metric)
	if config.provider == "memory":
		return InMemoryVectorStore(metric=metric, persist_dir=data_dir / "vectors" if config.persist else None)

	if config.provider == "milvus":
		from codescope.processor.storage.milvus import MilvusVectorStore

		uri = config.uri or str(data_dir / "milvus.db")
		if "://" not in uri:
			Path(uri).parent.mkdir(parents=True, exist_ok=True)
		return MilvusVectorStore(uri, token=config.token, metric=metric)

	msg = f"Unknown vector store provider: {config.provider}"
	raise InvalidArgumentError(msg)
