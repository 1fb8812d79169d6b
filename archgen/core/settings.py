r"""
Global Settings Management for ArchGen.

Uses platformdirs to store user settings in OS-standard locations.
Manages the OpenAI API key, model selection, agent loop tuning and server
limits.

Storage Locations (via platformdirs):
- Windows: %APPDATA%\ArchGen\config.json
- Linux: ~/.config/archgen/config.json
- macOS: ~/Library/Application Support/ArchGen/config.json

The API key falls back to the OPENAI_API_KEY environment variable (entry
points load ``.env`` via python-dotenv before the first lookup).
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from platformdirs import user_config_dir

logger = logging.getLogger(__name__)


class SettingsManager:
    """
    Manages global user settings in OS-standard config directory.

    Settings are stored as JSON and include:
    - API keys (OpenAI)
    - Model selections (architecture_agent)
    - Agent loop tuning (max_turns, continuation, timeouts, reasoning)
    - Server binding and limits (host, port, cors_origins, session limits)
    """

    APP_NAME = "ArchGen"
    APP_AUTHOR = "ArchGen"
    CONFIG_FILE_NAME = "config.json"
    SECTIONS = ("api_keys", "models", "agent", "server")

    ENV_API_KEYS = {
        "openai": "OPENAI_API_KEY",
    }

    # Default settings structure
    DEFAULT_SETTINGS = {
        "api_keys": {
            "openai": ""
        },
        "models": {
            "architecture_agent": "gpt-5"
        },
        "agent": {
            "max_turns": 3,
            "continuation": True,
            "request_timeout_seconds": 180,
            "max_retries": 0,
            "reasoning_effort": "minimal",
            "reasoning_summary": "concise"
        },
        "server": {
            "max_concurrent_sessions": 3,
            "session_start_timeout_seconds": 30,
            "host": "127.0.0.1",
            "port": 8765,
            "cors_origins": ["*"]
        }
    }

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        """
        Initialize SettingsManager with platformdirs config directory.

        Args:
            config_dir: Override for the config directory (tests).
        """
        if config_dir is None:
            config_dir = user_config_dir(self.APP_NAME, self.APP_AUTHOR)
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / self.CONFIG_FILE_NAME

        # Ensure config directory exists
        self.config_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Settings config directory: {self.config_dir}")

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from config file.

        Returns:
            Dict with settings (uses defaults if file doesn't exist).
        """
        if not self.config_file.exists():
            logger.debug("Config file not found, using defaults")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                settings = json.load(f)

            # Merge with defaults to handle missing keys
            return self._merge_with_defaults(settings)

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            logger.warning("Using default settings")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        except OSError as e:
            logger.error(f"Failed to load settings: {e}")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Save settings to config file.

        Args:
            settings: Settings dict to save.

        Returns:
            True if save succeeded, False otherwise.
        """
        try:
            validated_settings = self._merge_with_defaults(settings)

            # Write to temp file first (atomic write)
            temp_file = self.config_file.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(validated_settings, f, indent=2)

            temp_file.replace(self.config_file)

            logger.info("Settings saved successfully")
            return True

        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get_api_key(self, provider: str = "openai") -> Optional[str]:
        """
        Get API key for a specific provider.

        Args:
            provider: Provider name ("openai").

        Returns:
            API key from config, else from the environment, else None.
        """
        settings = self.load_settings()
        api_key = settings.get("api_keys", {}).get(provider, "")
        if api_key:
            return api_key

        env_var = self.ENV_API_KEYS.get(provider)
        if env_var:
            return os.environ.get(env_var) or None
        return None

    def set_api_key(self, provider: str, api_key: str) -> bool:
        settings = self.load_settings()
        settings.setdefault("api_keys", {})[provider] = api_key
        return self.save_settings(settings)

    def get_model(self, component: str = "architecture_agent") -> str:
        """
        Get configured model for a specific component.

        Args:
            component: Component name ("architecture_agent").

        Returns:
            Model name (defaults from DEFAULT_SETTINGS if not configured).
        """
        settings = self.load_settings()
        return settings.get("models", {}).get(
            component,
            self.DEFAULT_SETTINGS["models"].get(component, "")
        )

    def set_model(self, component: str, model_name: str) -> bool:
        settings = self.load_settings()
        settings.setdefault("models", {})[component] = model_name
        return self.save_settings(settings)

    def get_agent_setting(self, key: str, default: Any = None) -> Any:
        """
        Get an agent loop setting (max_turns, continuation, ...).

        Args:
            key: Setting key.
            default: Value if the key is unknown.

        Returns:
            Setting value or default.
        """
        settings = self.load_settings()
        return settings.get("agent", {}).get(key, default)

    def set_agent_setting(self, key: str, value: Any) -> bool:
        settings = self.load_settings()
        settings.setdefault("agent", {})[key] = value
        return self.save_settings(settings)

    def get_server_setting(self, key: str, default: Any = None) -> Any:
        settings = self.load_settings()
        return settings.get("server", {}).get(key, default)

    def _merge_with_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user settings with defaults to handle missing keys.

        Args:
            settings: User settings dict (potentially incomplete).

        Returns:
            Complete settings dict with defaults filled in.
        """
        merged = copy.deepcopy(self.DEFAULT_SETTINGS)

        for section in self.SECTIONS:
            if isinstance(settings.get(section), dict):
                merged[section].update(settings[section])

        return merged

    def reset_to_defaults(self) -> bool:
        logger.warning("Resetting settings to defaults")
        return self.save_settings(copy.deepcopy(self.DEFAULT_SETTINGS))

    def get_config_file_path(self) -> Path:
        return self.config_file


# Singleton instance for global access
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """
    Get singleton SettingsManager instance.

    Returns:
        Global SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


__all__ = ["SettingsManager", "get_settings_manager"]
