"""Tests for hybrid score fusion and the per-collection provider."""

import asyncio
from dataclasses import replace

import pytest

from codescope.processor.models import CodeChunk, Language, SearchResult
from codescope.processor.search.hybrid import (
	HybridSearchEngine,
	HybridSearchProvider,
	HybridWeights,
	chunk_from_record,
	normalize_bm25,
)


def make_chunk(content: str, file_path: str, start_line: int = 1) -> CodeChunk:
	"""Build a one-line chunk."""
	return CodeChunk(
		id=f"{file_path}_{start_line}_{start_line}",
		content=content,
		file_path=file_path,
		start_line=start_line,
		end_line=start_line,
		language=Language.RUST,
	)


def as_candidate(chunk: CodeChunk, score: float) -> SearchResult:
	"""Turn a chunk into a semantic search candidate."""
	return SearchResult.from_metadata(chunk.id, score, chunk.to_metadata())


MATCHING = make_chunk("fn parse_config_token() { }", "config.rs")
UNRELATED = make_chunk("fn render_widget() { }", "widget.rs")


@pytest.mark.unit
class TestHybridWeights:
	"""Tests for fusion weights."""

	def test_defaults(self) -> None:
		"""Default weights favour semantic similarity."""
		weights = HybridWeights()

		assert (weights.bm25_weight, weights.semantic_weight) == (0.4, 0.6)

	def test_negative_weights_are_clamped(self) -> None:
		"""Negative weights become zero."""
		weights = HybridWeights(bm25_weight=-1.0, semantic_weight=2.0)

		assert weights.bm25_weight == 0.0
		assert weights.semantic_weight == 2.0

	def test_presets(self) -> None:
		"""Single-signal presets zero the other weight."""
		assert HybridWeights.semantic_only().bm25_weight == 0.0
		assert HybridWeights.bm25_only().semantic_weight == 0.0


@pytest.mark.unit
class TestHybridSearchEngine:
	"""Tests for reranking semantic candidates."""

	def test_keyword_match_breaks_semantic_tie(self) -> None:
		"""With equal cosine scores the chunk containing the query terms ranks first."""
		engine = HybridSearchEngine()
		engine.add_documents([UNRELATED, MATCHING])
		candidates = [as_candidate(UNRELATED, 0.8), as_candidate(MATCHING, 0.8)]

		results = engine.search("parse config token", candidates, limit=10)

		assert [r.result.file_path for r in results] == ["config.rs", "widget.rs"]
		assert results[0].hybrid_score > results[1].hybrid_score
		assert results[0].bm25_score > 0
		assert results[1].bm25_score == 0.0

	def test_fused_score(self) -> None:
		"""The hybrid score is the weighted sum of normalized BM25 and semantic scores."""
		engine = HybridSearchEngine(HybridWeights(bm25_weight=0.5, semantic_weight=0.5))
		engine.add_documents([MATCHING, UNRELATED])

		[result] = engine.search("parse", [as_candidate(MATCHING, 0.6)], limit=1)

		assert result.semantic_score == 0.6
		assert result.hybrid_score == pytest.approx(0.5 * result.bm25_score + 0.3)

	def test_results_are_limited_and_ordered(self) -> None:
		"""At most ``limit`` results are returned, best first."""
		chunks = [make_chunk(f"fn item_{i}() {{ }}", f"f{i}.rs") for i in range(6)]
		engine = HybridSearchEngine()
		engine.add_documents(chunks)
		candidates = [as_candidate(chunk, 0.1 * (i + 1)) for i, chunk in enumerate(chunks)]

		results = engine.search("unrelated", candidates, limit=3)

		assert len(results) == 3
		scores = [r.hybrid_score for r in results]
		assert scores == sorted(scores, reverse=True)

	def test_candidates_missing_from_index_get_no_keyword_score(self) -> None:
		"""Candidates whose key is not indexed score zero for BM25."""
		engine = HybridSearchEngine()
		engine.add_documents([UNRELATED])

		[result] = engine.search("parse config", [as_candidate(MATCHING, 0.5)], limit=5)

		assert result.bm25_score == 0.0
		assert result.hybrid_score == pytest.approx(0.6 * 0.5)

	def test_empty_index_keeps_semantic_order(self) -> None:
		"""Without indexed documents the semantic scores pass through."""
		engine = HybridSearchEngine()
		candidates = [as_candidate(MATCHING, 0.9), as_candidate(UNRELATED, 0.4)]

		results = engine.search("parse", candidates, limit=1)

		assert len(results) == 1
		assert results[0].hybrid_score == 0.9

	def test_ties_are_broken_by_id(self) -> None:
		"""Equal fused scores order by result id."""
		engine = HybridSearchEngine()
		first = make_chunk("fn alpha() { }", "b.rs")
		second = make_chunk("fn alpha() { }", "a.rs")
		engine.add_documents([first, second])

		results = engine.search("zzz", [as_candidate(first, 0.5), as_candidate(second, 0.5)], limit=2)

		assert [r.result.id for r in results] == ["a.rs_1_1", "b.rs_1_1"]

	def test_add_remove_and_clear(self) -> None:
		"""Documents are added once per key and removed by file."""
		engine = HybridSearchEngine()

		assert engine.add_documents([MATCHING, UNRELATED, MATCHING]) == 2
		assert engine.add_documents([MATCHING]) == 0
		assert engine.remove_file("config.rs") == 1
		assert engine.remove_file("config.rs") == 0
		assert engine.document_count == 1

		engine.clear()
		assert engine.document_count == 0
		assert engine.scorer is None

	def test_stats(self) -> None:
		"""Statistics include weights even for an empty index."""
		stats = HybridSearchEngine().stats()

		assert stats["total_documents"] == 0
		assert stats["bm25_weight"] == 0.4
		assert stats["semantic_weight"] == 0.6


@pytest.mark.unit
def test_normalize_bm25() -> None:
	"""Raw scores are squashed into [0, 1)."""
	assert normalize_bm25(0.0) == 0.0
	assert normalize_bm25(-3.0) == 0.0
	assert 0.5 < normalize_bm25(0.1) < normalize_bm25(5.0) < 1.0


@pytest.mark.unit
class TestChunkFromRecord:
	"""Tests for rebuilding chunks from stored records."""

	def test_round_trips_metadata(self) -> None:
		"""A stored chunk record becomes an equal chunk."""
		record = as_candidate(MATCHING, 1.0)

		assert chunk_from_record(record) == MATCHING

	def test_incomplete_records_are_ignored(self) -> None:
		"""Records without content or a position cannot be indexed."""
		assert chunk_from_record(SearchResult.from_metadata("x", 1.0, {"file_path": "a.rs"})) is None
		assert chunk_from_record(SearchResult.from_metadata("x", 1.0, {"content": "fn a() {}"})) is None

	def test_bad_language_falls_back(self) -> None:
		"""Unknown language values map to UNKNOWN."""
		record = SearchResult.from_metadata(
			"x", 1.0, {"content": "x", "file_path": "a.rs", "start_line": 3, "language": "klingon"}
		)

		chunk = chunk_from_record(record)

		assert chunk is not None
		assert chunk.language is Language.UNKNOWN
		assert chunk.end_line == 3


@pytest.mark.unit
class TestHybridSearchProvider:
	"""Tests for per-collection engines."""

	async def test_index_and_search(self) -> None:
		"""Indexed collections rerank; unknown collections pass through."""
		provider = HybridSearchProvider()
		await provider.index_chunks("main", [UNRELATED, MATCHING])
		candidates = [as_candidate(UNRELATED, 0.8), as_candidate(MATCHING, 0.8)]

		reranked = await provider.search("main", "parse config token", candidates, limit=2)
		passthrough = await provider.search("other", "parse config token", candidates, limit=2)

		assert reranked[0].result.file_path == "config.rs"
		assert passthrough[0].result.file_path == "widget.rs"
		assert provider.has_documents("main")
		assert not provider.has_documents("other")

	async def test_disabled_provider_keeps_semantic_order(self) -> None:
		"""A disabled provider never reranks."""
		provider = HybridSearchProvider(enabled=False)
		await provider.index_chunks("main", [UNRELATED, MATCHING])

		results = await provider.search(
			"main", "parse config token", [as_candidate(UNRELATED, 0.8), as_candidate(MATCHING, 0.8)], limit=2
		)

		assert results[0].result.file_path == "widget.rs"

	async def test_remove_rebuild_and_clear(self) -> None:
		"""Files can be removed, collections rebuilt and cleared."""
		provider = HybridSearchProvider()
		await provider.index_chunks("main", [UNRELATED, MATCHING])

		assert await provider.remove_file("main", "widget.rs") == 1
		assert await provider.remove_file("missing", "widget.rs") == 0
		assert provider.document_count("main") == 1

		assert await provider.rebuild_from("main", [UNRELATED]) == 1
		assert provider.stats("main")["total_documents"] == 1

		await provider.clear_collection("main")
		assert provider.document_count("main") == 0
		assert provider.stats("main")["total_documents"] == 0

	async def test_empty_index_request(self) -> None:
		"""Indexing nothing is a no-op."""
		provider = HybridSearchProvider()

		assert await provider.index_chunks("main", []) == 0
		assert not provider.has_documents("main")

	async def test_search_racing_clear_keeps_semantic_order(self) -> None:
		"""A search queued behind a clear finds the collection gone and passes candidates through."""
		provider = HybridSearchProvider()
		await provider.index_chunks("main", [UNRELATED, MATCHING])
		candidates = [as_candidate(UNRELATED, 0.8), as_candidate(MATCHING, 0.8)]

		async with provider._lock("main").write():  # noqa: SLF001
			search = asyncio.create_task(provider.search("main", "parse config token", candidates, limit=2))
			await asyncio.sleep(0)
			clear = asyncio.create_task(provider.clear_collection("main"))
			await asyncio.sleep(0)

		await clear
		results = await search

		assert [r.result.file_path for r in results] == ["widget.rs", "config.rs"]
		assert all(r.bm25_score == 0.0 for r in results)
		assert not provider.has_documents("main")

	async def test_remove_racing_clear_removes_nothing(self) -> None:
		"""A removal queued behind a clear reports nothing removed."""
		provider = HybridSearchProvider()
		await provider.index_chunks("main", [UNRELATED, MATCHING])

		async with provider._lock("main").write():  # noqa: SLF001
			clear = asyncio.create_task(provider.clear_collection("main"))
			await asyncio.sleep(0)
			remove = asyncio.create_task(provider.remove_file("main", "widget.rs"))
			await asyncio.sleep(0)

		await clear

		assert await remove == 0
		assert provider.document_count("main") == 0

	async def test_remove_file_is_scoped_to_codebase(self) -> None:
		"""Same-named files from two codebases keep separate keyword entries."""
		provider = HybridSearchProvider()
		first = replace(make_chunk("fn parse_config() { }", "src/main.rs"), metadata={"codebase": "/work/a"})
		second = replace(make_chunk("fn http_server() { }", "src/main.rs"), metadata={"codebase": "/work/b"})
		await provider.index_chunks("main", [first, second])

		assert provider.document_count("main") == 2
		assert await provider.remove_file("main", "src/main.rs", "/work/a") == 1
		assert provider.document_count("main") == 1

		results = await provider.search("main", "http server", [as_candidate(second, 0.5)], limit=1)
		assert results[0].bm25_score > 0
