"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from modcache.exceptions import ConfigurationError
from modcache.models.config import SyncConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SyncConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: defaults and CLI options are used.

        Raises:
            ConfigurationError: If the config file is invalid or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return SyncConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys get defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = SyncConfig()
        for key in sorted(SyncConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key))
            config["DEFAULT"][key] = self._to_ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = SyncConfig()
        try:
            return {
                "api_key": section.get("api_key", ""),
                "api_base_url": section.get("api_base_url", defaults.api_base_url),
                "manifest_path": section.get("manifest_path", defaults.manifest_path),
                "cache_dir": section.get("cache_dir", defaults.cache_dir),
                "state_file": section.get("state_file", defaults.state_file),
                "modlist_path": section.get("modlist_path", defaults.modlist_path),
                "max_workers": section.getint("max_workers", defaults.max_workers),
                "checkpoint": section.getboolean("checkpoint", defaults.checkpoint),
                "prune_orphans": section.getboolean(
                    "prune_orphans", defaults.prune_orphans
                ),
                "verify_hashes": section.getboolean(
                    "verify_hashes", defaults.verify_hashes
                ),
                "metadata_cache_days": section.getint(
                    "metadata_cache_days", defaults.metadata_cache_days
                ),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads the file as-is, for display."""
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Run 'modcache init' first."
            )
        self._parser.read(self.config_file_path, encoding="utf-8")
        return self._get_config_as_dict()

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = SyncConfig()
        needs_saving = False
        config_section = self._parser["DEFAULT"]

        for key in sorted(SyncConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
