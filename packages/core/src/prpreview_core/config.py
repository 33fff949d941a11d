import os
from pathlib import Path
from typing import Iterable, Optional

import yaml

from prpreview_core.errors import ConfigurationError

# Temporaries younger than this may still belong to a running operation, possibly in another process.
LEFTOVER_MAX_AGE = 60 * 60

DEFAULT_CONFIG: dict = {
    "github_org": None,
    "github_repo": None,
    "github_team_slugs": [],
    "trusted_pr_label": None,
    "builds_dir": None,
    "downloads_dir": "/tmp/prpreview-downloads",
    "download_size_limit": 50 * 1024 * 1024,
    "download_timeout": None,  # seconds; None = bounded by download_size_limit only
    "build_artifact_path": "aio-snapshot.tgz",  # fnmatch pattern over CI artifact paths
    "significant_files_pattern": ".*",
    "preview_job_name": "aio_preview",
    "leftover_max_age": LEFTOVER_MAX_AGE,  # seconds before an abandoned temp file/dir may be purged
    "domain_name": None,
    "host": "127.0.0.1",
    "port": 8080,
    "log_level": "INFO",
}

# Keys that `prpreview serve` cannot run without.
SERVER_REQUIRED_KEYS = (
    "builds_dir",
    "domain_name",
    "github_token",
    "github_org",
    "github_repo",
    "circleci_token",
    "trusted_pr_label",
)


def load_config(config_path: str = ".prpreview.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prpreview.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "github_team_slugs": list(DEFAULT_CONFIG["github_team_slugs"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Team slugs may be given as a comma separated string.
    slugs = config.get("github_team_slugs")
    if isinstance(slugs, str):
        config["github_team_slugs"] = [s.strip() for s in slugs.split(",") if s.strip()]

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["circleci_token"] = os.environ.get("CIRCLE_CI_TOKEN")

    return config


def assert_not_missing_or_empty(name: str, value) -> None:
    """Raise ConfigurationError if ``value`` is None, blank, or an empty collection."""
    if value is None:
        missing = True
    elif isinstance(value, str):
        missing = not value.strip()
    elif isinstance(value, (list, tuple, set, frozenset)):
        missing = not any(str(v).strip() for v in value)
    else:
        missing = False
    if missing:
        raise ConfigurationError(f"Missing or empty required parameter '{name}'!")


def validate_config(config: dict, required: Iterable[str] = SERVER_REQUIRED_KEYS) -> dict:
    """Fail fast on the first missing or empty required key. Returns the config unchanged."""
    for key in required:
        assert_not_missing_or_empty(key, config.get(key))
    return config
