"""
Configuration loader for CodeScope.

This module resolves the configuration file, parses it, applies
``CODESCOPE_*`` environment overrides and validates the result against
:class:`AppConfigSchema`.

"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from xdg.BaseDirectory import xdg_config_home

from codescope.config.config_schema import AppConfigSchema
from codescope.errors import ConfigFileNotFoundError, ConfigParsingError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CODESCOPE_"
ENV_SECTION_SEPARATOR = "__"


class ConfigLoader:
	"""
	Loads and manages configuration for CodeScope using Pydantic schemas.

	Lookup order is an explicit file, then ``./.codescope.yml``, then
	``$XDG_CONFIG_HOME/codescope/config.yml``. Values from the file are merged
	over schema defaults and environment variables are merged over both.

	"""

	_instance: ConfigLoader | None = None

	@classmethod
	def get_instance(cls, config_file: Path | None = None, reload: bool = False) -> ConfigLoader:
		"""
		Get the shared ConfigLoader instance.

		Args:
		    config_file: Path to configuration file (optional)
		    reload: Whether to reload config even if already loaded

		Returns:
		    ConfigLoader: Shared instance

		"""
		if cls._instance is None:
			cls._instance = cls(config_file)
		elif reload:
			cls._instance.reload_config(config_file)
		return cls._instance

	@classmethod
	def reset_instance(cls) -> None:
		"""Forget the shared instance."""
		cls._instance = None

	def __init__(self, config_file: Path | None = None, environ: dict[str, str] | None = None) -> None:
		"""
		Initialize the configuration loader.

		Args:
		    config_file: Path to configuration file (optional)
		    environ: Environment mapping to read overrides from, ``os.environ`` by default

		"""
		self._config_file = config_file
		self._environ = os.environ if environ is None else environ
		self._resolved_config_file = self._resolve_config_file(config_file)
		self._app_config = self._load_config()

	def reload_config(self, config_file: Path | None = None) -> None:
		"""Reload configuration, optionally from a different file."""
		if config_file is not None:
			self._config_file = config_file
		self._resolved_config_file = self._resolve_config_file(self._config_file)
		self._app_config = self._load_config()
		logger.debug("Configuration reloaded")

	@property
	def config_file(self) -> Path | None:
		"""The configuration file in use, if any."""
		return self._resolved_config_file

	@property
	def get(self) -> AppConfigSchema:
		"""The current application configuration."""
		return self._app_config

	@staticmethod
	def _resolve_config_file(config_file: Path | None = None) -> Path | None:
		"""
		Resolve the configuration file path.

		Args:
		    config_file: Explicitly provided config file path (optional)

		Returns:
		    Resolved config file path or None if no suitable file was found

		Raises:
		    ConfigFileNotFoundError: If an explicit file was given but does not exist

		"""
		if config_file:
			path = Path(config_file).expanduser().resolve()
			if not path.exists():
				msg = f"Configuration file not found: {path}"
				raise ConfigFileNotFoundError(msg)
			return path

		local_config = Path(".codescope.yml")
		if local_config.exists():
			return local_config

		xdg_config_file = Path(xdg_config_home) / "codescope" / "config.yml"
		if xdg_config_file.exists():
			return xdg_config_file

		return None

	@staticmethod
	def _parse_yaml_file(file_path: Path) -> dict[str, Any]:
		"""
		Parse a YAML file into a dictionary.

		Raises:
		    yaml.YAMLError: If the file is not valid YAML or not a mapping

		"""
		with file_path.open(encoding="utf-8") as f:
			content = yaml.safe_load(f)
		if content is None:
			return {}
		if not isinstance(content, dict):
			msg = f"File {file_path} does not contain a valid YAML dictionary"
			raise yaml.YAMLError(msg)
		return content

	def _env_overrides(self) -> dict[str, Any]:
		"""
		Collect overrides from ``CODESCOPE_<SECTION>__<KEY>`` variables.

		``CODESCOPE_DATA_DIR`` sets a top-level key; values are parsed as YAML
		scalars so ``true`` and ``0.5`` keep their types.

		"""
		overrides: dict[str, Any] = {}
		for name, raw in self._environ.items():
			if not name.startswith(ENV_PREFIX):
				continue
			parts = name[len(ENV_PREFIX) :].lower().split(ENV_SECTION_SEPARATOR)
			if not all(parts):
				continue
			try:
				value = yaml.safe_load(raw)
			except yaml.YAMLError:
				value = raw
			target = overrides
			for part in parts[:-1]:
				target = target.setdefault(part, {})
			target[parts[-1]] = value
		return overrides

	def _load_config(self) -> AppConfigSchema:
		"""
		Load configuration from file and environment into AppConfigSchema.

		Raises:
		    ConfigParsingError: If the file cannot be read, parsed or validated

		"""
		file_config: dict[str, Any] = {}
		if self._resolved_config_file:
			try:
				file_config = self._parse_yaml_file(self._resolved_config_file)
				logger.info("Loaded configuration from %s", self._resolved_config_file)
			except yaml.YAMLError as e:
				msg = f"Configuration file {self._resolved_config_file} does not contain a valid YAML dictionary."
				logger.exception(msg)
				raise ConfigParsingError(msg) from e
			except OSError as e:
				msg = f"Error accessing configuration file {self._resolved_config_file}: {e}"
				logger.exception(msg)
				raise ConfigParsingError(msg) from e
		else:
			logger.info("No configuration file found. Using default configuration.")

		self._merge_configs(file_config, self._env_overrides())

		try:
			return AppConfigSchema(**file_config)
		except ValidationError as e:
			msg = f"Error parsing configuration into schema: {e}"
			logger.exception(msg)
			raise ConfigParsingError(msg) from e

	def _merge_configs(self, base: dict[str, Any], override: dict[str, Any]) -> None:
		"""Recursively merge ``override`` into ``base``."""
		for key, value in override.items():
			if isinstance(value, dict) and isinstance(base.get(key), dict):
				self._merge_configs(base[key], value)
			else:
				base[key] = value
