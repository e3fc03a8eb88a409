"""
BM25 keyword scoring over indexed code chunks.

The scorer is rebuilt from scratch whenever documents are added, which
keeps document frequencies and the average length exact.

"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
	from collections.abc import Sequence

	from codescope.processor.models import CodeChunk

DEFAULT_K1 = 1.2
DEFAULT_B = 0.75
DEFAULT_MIN_TOKEN_LENGTH = 2

_SPLIT_PATTERN = re.compile(r"[\W_]+")


@dataclass(frozen=True)
class BM25Params:
	"""Scoring parameters."""

	k1: float = DEFAULT_K1
	"""Term-frequency saturation."""

	b: float = DEFAULT_B
	"""Document length normalization."""

	min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH
	"""Tokens of this length or shorter are ignored."""


def tokenize(text: str, min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH) -> list[str]:
	"""
	Split text into lowercase alphanumeric tokens, including non-ASCII letters and digits.

	Args:
	    text: Text to tokenize.
	    min_token_length: Tokens with at most this many characters are dropped.

	Returns:
	    Tokens in order of appearance.

	"""
	return [token for token in _SPLIT_PATTERN.split(text.lower()) if len(token) > min_token_length]


class BM25Scorer:
	"""Score chunks against queries using corpus statistics from a fixed document set."""

	def __init__(self, documents: Sequence[CodeChunk], params: BM25Params | None = None) -> None:
		"""
		Build statistics for a document set.

		Args:
		    documents: Indexed chunks. Chunks sharing a key count once.
		    params: Scoring parameters.

		"""
		self.params = params or BM25Params()
		self._term_freqs: dict[str, Counter[str]] = {}
		self._doc_lengths: dict[str, int] = {}
		self._doc_freqs: Counter[str] = Counter()

		for document in documents:
			if document.key in self._term_freqs:
				continue
			tokens = tokenize(document.content, self.params.min_token_length)
			frequencies = Counter(tokens)
			self._term_freqs[document.key] = frequencies
			self._doc_lengths[document.key] = len(tokens)
			self._doc_freqs.update(frequencies.keys())

		self.total_documents = len(self._term_freqs)
		total_length = sum(self._doc_lengths.values())
		self.average_doc_length = total_length / self.total_documents if self.total_documents else 0.0

	@property
	def unique_terms(self) -> int:
		"""Number of distinct terms in the corpus."""
		return len(self._doc_freqs)

	def tokenize(self, text: str) -> list[str]:
		"""Tokenize text with this scorer's settings."""
		return tokenize(text, self.params.min_token_length)

	def idf(self, term: str) -> float:
		"""Inverse document frequency, always positive."""
		if self.total_documents <= 1:
			return 1.0
		doc_freq = self._doc_freqs.get(term, 0)
		return math.log(1.0 + (self.total_documents - doc_freq + 0.5) / (doc_freq + 0.5))

	def _document_stats(self, document: CodeChunk) -> tuple[Counter[str], int]:
		frequencies = self._term_freqs.get(document.key)
		if frequencies is not None:
			return frequencies, self._doc_lengths[document.key]
		tokens = self.tokenize(document.content)
		return Counter(tokens), len(tokens)

	def score(self, document: CodeChunk, query: str) -> float:
		"""Score a chunk against a query string."""
		return self.score_with_tokens(document, self.tokenize(query))

	def score_with_tokens(self, document: CodeChunk, query_tokens: Sequence[str]) -> float:
		"""
		Score a chunk against an already tokenized query.

		Args:
		    document: Chunk to score. Indexed chunks use cached term counts.
		    query_tokens: Output of :meth:`tokenize` for the query.

		Returns:
		    Non-negative BM25 score.

		"""
		frequencies, doc_length = self._document_stats(document)
		if not frequencies:
			return 0.0

		k1 = self.params.k1
		b = self.params.b
		length_ratio = doc_length / self.average_doc_length if self.average_doc_length > 0 else 1.0
		norm = k1 * (1.0 - b + b * length_ratio)

		total = 0.0
		for term in query_tokens:
			tf = frequencies.get(term, 0)
			if tf == 0:
				continue
			total += self.idf(term) * (tf * (k1 + 1.0)) / (tf + norm)
		return total

	def stats(self) -> dict[str, float | int]:
		"""Corpus statistics for status reports."""
		return {
			"total_documents": self.total_documents,
			"unique_terms": self.unique_terms,
			"average_doc_length": self.average_doc_length,
			"bm25_k1": self.params.k1,
			"bm25_b": self.params.b,
		}
