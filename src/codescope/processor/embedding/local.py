"""Embedding client backed by a local sentence-transformers model."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING

import torch
from sentence_transformers import SentenceTransformer

from codescope.errors import EmbeddingError
from codescope.processor.embedding.base import EmbeddingClient

if TYPE_CHECKING:
	from collections.abc import Sequence

	from codescope.processor.models import Embedding

logger = logging.getLogger(__name__)


class SentenceTransformerEmbeddingClient(EmbeddingClient):
	"""
	Embed text with a sentence-transformers model.

	The model is loaded on first use and encoding runs in a worker thread so
	the event loop keeps serving other requests.

	"""

	def __init__(self, model_name: str, device: str | None = None, batch_size: int = 64) -> None:
		"""
		Initialize the client.

		Args:
		    model_name: Hugging Face model id or local path.
		    device: Torch device; CUDA when available, CPU otherwise.
		    batch_size: Encode batch size passed to the model.

		"""
		self.model_name = model_name
		self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")
		self.batch_size = batch_size
		self._model: SentenceTransformer | None = None
		self._lock = threading.Lock()

	def _get_model(self) -> SentenceTransformer:
		"""Load the model once, raising EmbeddingError on failure."""
		with self._lock:
			if self._model is None:
				logger.info(f"Loading embedding model '{self.model_name}' on device: {self.device}")
				try:
					self._model = SentenceTransformer(self.model_name, device=self.device)
				except (OSError, ValueError, RuntimeError) as e:
					msg = f"Failed to load embedding model '{self.model_name}': {e}"
					raise EmbeddingError(msg) from e
				logger.info(f"Embedding model '{self.model_name}' loaded successfully.")
			return self._model

	def _encode(self, texts: list[str]) -> list[list[float]]:
		model = self._get_model()
		try:
			vectors = model.encode(texts, batch_size=self.batch_size, show_progress_bar=False, convert_to_numpy=True)
		except (RuntimeError, ValueError) as e:
			msg = f"Embedding model '{self.model_name}' failed to encode {len(texts)} texts: {e}"
			raise EmbeddingError(msg) from e
		return vectors.tolist()

	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		"""Embed texts in a worker thread."""
		if not texts:
			return []
		vectors = await asyncio.to_thread(self._encode, list(texts))
		return self._to_embeddings(vectors, self.model_name, len(texts))

	def dimensions(self) -> int:
		"""Embedding size reported by the model."""
		dimensions = self._get_model().get_sentence_embedding_dimension()
		if dimensions is None:
			msg = f"Embedding model '{self.model_name}' does not report its dimensions"
			raise EmbeddingError(msg)
		return int(dimensions)

	def provider_name(self) -> str:
		"""Provider identifier."""
		return "sentence-transformers"
