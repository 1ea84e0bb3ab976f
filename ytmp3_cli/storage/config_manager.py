"""
Reads and writes the INI file behind PipelineConfig, filling in keys added
in newer releases.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ytmp3_cli.exceptions import ConfigurationError
from ytmp3_cli.models.config import PipelineConfig

log = logging.getLogger(__name__)

LIST_KEYS = ("strategy_order", "converter_services")
INT_KEYS = ("quality", "max_workers", "strategy_attempts", "transcode_attempts")
FLOAT_KEYS = (
    "strategy_delay",
    "transcode_delay",
    "process_timeout",
    "http_timeout",
    "probe_timeout",
)
BOOL_KEYS = ("verify_output", "embed_artwork")


def _to_ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(map(str, value))
    return str(value)


class ConfigManager:
    """Loads, migrates and saves one INI configuration file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        # Converter URL templates may contain '%' escapes
        self._parser = configparser.ConfigParser(interpolation=None)

    @property
    def exists(self) -> bool:
        return self.config_file_path.is_file()

    def load_config(self, cli_options: dict[str, Any] | None = None) -> PipelineConfig:
        """
        Merges the INI file with command-line overrides into a PipelineConfig.

        A missing file is not an error: built-in defaults are used instead.

        Args:
            cli_options: Values from command-line flags; None means "not given".

        Returns:
            A validated PipelineConfig object.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.exists:
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Cannot parse {self.config_file_path}: {e}") from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Added new settings with default values to the configuration file."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        if cli_options:
            config_from_file.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        try:
            config_dir = self.config_file_path.parent
            return PipelineConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Writes a complete configuration file, overwriting any existing one.

        Args:
            settings: A dictionary of settings to save; missing keys get defaults.
        """
        try:
            validated = PipelineConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration:\n{e}") from e

        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        for key in sorted(PipelineConfig.get_ini_keys()):
            config["DEFAULT"][key] = _to_ini_value(getattr(validated, key))

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Cannot write {self.config_file_path}: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Converts the DEFAULT section into typed PipelineConfig keyword arguments."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        try:
            for key in PipelineConfig.get_ini_keys():
                if key not in section:
                    continue
                if key in LIST_KEYS:
                    values[key] = [
                        s.strip() for s in section.get(key, "").split(",") if s.strip()
                    ]
                elif key in INT_KEYS:
                    values[key] = section.getint(key)
                elif key in FLOAT_KEYS:
                    values[key] = section.getfloat(key)
                elif key in BOOL_KEYS:
                    values[key] = section.getboolean(key)
                else:
                    values[key] = section.get(key, "")
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e
        return values

    def _migrate_if_needed(self) -> bool:
        """Writes defaults for any known key the file lacks. Returns True if it did."""
        section = self._parser["DEFAULT"]
        missing = sorted(PipelineConfig.get_ini_keys() - set(section))
        if not missing:
            return False

        defaults = PipelineConfig()
        for key in missing:
            section[key] = _to_ini_value(getattr(defaults, key))
            log.debug(f"Config key {key!r} missing, defaulting to {section[key]!r}")

        try:
            with open(self.config_file_path, "w", encoding="utf-8") as f:
                self._parser.write(f)
        except OSError as e:
            log.warning(f"Could not write migrated keys to {self.config_file_path}: {e}")
            return False
        return True
