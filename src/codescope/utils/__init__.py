"""Utility helpers for CodeScope."""
