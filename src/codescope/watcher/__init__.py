"""Filesystem watching for automatic re-indexing."""

from codescope.watcher.file_watcher import FileChangeHandler, Watcher

__all__ = ["FileChangeHandler", "Watcher"]
