"""
mil config - Show or create .milhouse/config.yaml.
"""

from pathlib import Path

import yaml

from milhouse.lib.config import Config, ConfigError, load_config, save_config
from milhouse.lib.constants import CONFIG_FILE, EXIT_CONFIG, EXIT_ERROR, EXIT_OK
from milhouse.prd.paths import milhouse_exists, milhouse_path


def _require_project(base_path: Path) -> bool:
    if milhouse_exists(base_path):
        return True
    print("ERROR: Not a milhouse project. Run 'mil init' first.")
    return False


def cmd_config_show(args, base_path: Path) -> int:
    """Print the effective configuration (file merged over defaults) as YAML."""
    if not _require_project(base_path):
        return EXIT_CONFIG

    try:
        config = load_config(base_path)
        source = "defaults + " + CONFIG_FILE if milhouse_path(base_path, CONFIG_FILE).exists() else "defaults"
    except ConfigError as e:
        print(f"WARNING: {e}")
        print("Showing built-in defaults instead.")
        config = Config()
        source = "defaults"

    print(f"# Effective configuration ({source})")
    print(yaml.safe_dump(config.to_dict(), sort_keys=False), end="")
    return EXIT_OK


def cmd_config_init(args, base_path: Path) -> int:
    """Write the default configuration. An existing file is left alone."""
    if not _require_project(base_path):
        return EXIT_CONFIG

    config_path = milhouse_path(base_path, CONFIG_FILE)
    if config_path.exists():
        print(f"WARNING: {config_path} already exists, leaving it unchanged")
        return EXIT_OK

    try:
        save_config(base_path, Config())
    except ConfigError as e:
        print(f"ERROR: {e}")
        return EXIT_ERROR

    print(f"Created {config_path}")
    print("View the effective settings with: mil config show")
    return EXIT_OK
