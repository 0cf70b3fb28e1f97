"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from autosr.exceptions import ConfigurationError
from autosr.models.config import AppConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> AppConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated AppConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'autosr init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        try:
            config_from_file = self._get_config_as_dict()
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return AppConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = AppConfig.model_construct()
        for key in sorted(AppConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = self._to_ini(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, list):
            return ",".join(map(str, value))
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = AppConfig.model_construct()
        return {
            "save_to": section.get("save_to", defaults.save_to),
            "user_agent": section.get("user_agent", defaults.user_agent),
            "download_with": section.get("download_with", defaults.download_with),
            "segment_threads": section.getint(
                "segment_threads", defaults.segment_threads
            ),
            "segment_timeout": section.getfloat(
                "segment_timeout", defaults.segment_timeout
            ),
            "http_timeout": section.getfloat("http_timeout", defaults.http_timeout),
            "track_list": section.get("track_list", defaults.track_list),
            "poll_interval": section.getfloat("poll_interval", defaults.poll_interval),
            "recover_timeout": section.getfloat(
                "recover_timeout", defaults.recover_timeout
            ),
            "recover_poll_interval": section.getfloat(
                "recover_poll_interval", defaults.recover_poll_interval
            ),
            "shutdown_grace": section.getfloat(
                "shutdown_grace", defaults.shutdown_grace
            ),
            "hls_hosts": [
                h.strip() for h in section.get("hls_hosts", "").split(",") if h.strip()
            ],
        }

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = AppConfig.model_construct()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(AppConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini(getattr(defaults, key))
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
