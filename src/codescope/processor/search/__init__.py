"""Keyword scoring, hybrid fusion and the query pipeline."""

from codescope.processor.search.bm25 import BM25Params, BM25Scorer, tokenize
from codescope.processor.search.hybrid import HybridSearchEngine, HybridSearchProvider, HybridWeights
from codescope.processor.search.query import QueryPipeline, over_fetch_count

__all__ = [
	"BM25Params",
	"BM25Scorer",
	"HybridSearchEngine",
	"HybridSearchProvider",
	"HybridWeights",
	"QueryPipeline",
	"over_fetch_count",
	"tokenize",
]
