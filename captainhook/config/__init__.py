"""Configuration files for captainhook."""

from pathlib import Path

CONFIG_DIR = Path(__file__).parent
EXAMPLE_CONFIG_FILE = CONFIG_DIR / "example.captainhook.yaml"
DEFAULT_CONFIG_FILENAME = ".captainhook.yaml"

__all__ = ["CONFIG_DIR", "DEFAULT_CONFIG_FILENAME", "EXAMPLE_CONFIG_FILE"]
