"""CodeScope: incremental semantic indexing and hybrid search for source code."""

__version__ = "0.1.0"
