"""
captainhook - Config Loader
Loads and validates .captainhook.yaml files.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ..config import DEFAULT_CONFIG_FILENAME
from .models import CaptainHookConfig, HookConfiguration, UnrecognizedEventError


# =============================================================================
# Exceptions
# =============================================================================

class ConfigLoadError(Exception):
    """Error loading a configuration file."""
    pass


# =============================================================================
# Loader
# =============================================================================

KNOWN_KEYS = ("hooks", "file_mode", "backup")


class ConfigLoader:
    """
    Reads a YAML configuration file into a CaptainHookConfig.

    Responsibilities:
    - Read the YAML file
    - Validate its structure
    - Build the typed HookConfiguration
    """

    def __init__(self, strict: bool = True):
        """
        Args:
            strict: Reject unknown top-level keys.
        """
        self.strict = strict

    def load_from_file(self, filepath: Union[str, Path]) -> CaptainHookConfig:
        """
        Loads a configuration file.

        Raises:
            ConfigLoadError: If the file cannot be read or is malformed
            UnrecognizedEventError: If `hooks` names an unknown event
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise ConfigLoadError(f"File not found: {filepath}")

        if not filepath.is_file():
            raise ConfigLoadError(f"Not a file: {filepath}")

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {filepath}: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Cannot read {filepath}: {e}")

        # An empty file means "no hooks"
        if data is None:
            data = {}

        return self.load_from_dict(data, source_file=str(filepath))

    def load_from_dict(self, data: Dict[str, Any], source_file: str = "unknown") -> CaptainHookConfig:
        if not isinstance(data, dict):
            raise ConfigLoadError("Configuration must be a mapping at the top level")

        if self.strict:
            unknown = sorted(str(key) for key in data if key not in KNOWN_KEYS)
            if unknown:
                raise ConfigLoadError(
                    f"Unknown configuration key(s): {', '.join(unknown)}. "
                    f"Valid keys: {', '.join(KNOWN_KEYS)}"
                )

        hooks_data = data.get("hooks") or {}
        if not isinstance(hooks_data, dict):
            raise ConfigLoadError("Field 'hooks' must be a mapping of event -> command")

        try:
            hooks = HookConfiguration.from_mapping(hooks_data)
        except TypeError as e:
            raise ConfigLoadError(str(e))

        backup = data.get("backup", True)
        if not isinstance(backup, bool):
            raise ConfigLoadError(f"Field 'backup' must be true or false, got {backup!r}")

        file_mode = data.get("file_mode", "0755")
        if isinstance(file_mode, int) and not isinstance(file_mode, bool):
            # YAML reads 0755 as octal but 755 as decimal
            raise ConfigLoadError(
                f"Field 'file_mode' must be a quoted octal string such as \"0755\", got {file_mode!r}"
            )

        return CaptainHookConfig(
            hooks=hooks,
            file_mode=parse_file_mode(file_mode),
            backup=backup,
            source_file=source_file,
        )


def parse_file_mode(value: Union[int, str]) -> int:
    """
    Parses permission bits given as an octal string ("0755", "755") or int.

    Ints are taken as the mode bits themselves (0o755, not 755).
    """
    if isinstance(value, bool):
        raise ConfigLoadError(f"Invalid file_mode: {value!r}")

    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        try:
            mode = int(value.strip(), 8)
        except ValueError:
            raise ConfigLoadError(f"Invalid file_mode (expected octal): {value!r}")
    else:
        raise ConfigLoadError(f"Invalid file_mode: {value!r}")

    if not 0 <= mode <= 0o777:
        raise ConfigLoadError(f"file_mode out of range: {oct(mode)}")

    return mode


# =============================================================================
# Helpers
# =============================================================================

def load_config(filepath: Union[str, Path], strict: bool = True) -> CaptainHookConfig:
    loader = ConfigLoader(strict=strict)
    return loader.load_from_file(filepath)


def find_config_file(repo_root: Path) -> Path:
    """Default configuration path for a repository."""
    return Path(repo_root) / DEFAULT_CONFIG_FILENAME


def validate_config_file(filepath: Union[str, Path]) -> Dict[str, Any]:
    """
    Validates a configuration file and returns a report.

    Returns:
        {
            'valid': bool,
            'total_hooks': int,
            'errors': List[str],
            'warnings': List[str],
        }
    """
    result = {
        "valid": True,
        "total_hooks": 0,
        "errors": [],
        "warnings": [],
    }

    try:
        config = load_config(filepath)
        result["total_hooks"] = len(config.hooks)

        if not config.hooks:
            result["warnings"].append("No hooks configured: install will only remove generated hooks")

        if config.file_mode & 0o700 != 0o700:
            result["warnings"].append(
                f"file_mode {oct(config.file_mode)} lacks owner read, write or execute; they will be added"
            )

    except (ConfigLoadError, UnrecognizedEventError) as e:
        result["valid"] = False
        result["errors"].append(str(e))

    return result


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "ConfigLoader",
    "ConfigLoadError",
    "find_config_file",
    "load_config",
    "parse_file_mode",
    "validate_config_file",
]
