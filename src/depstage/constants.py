"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3
    INCOMPLETE_CANDIDATE = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    USER_AGENT = "depstage/0.3"

    OFFLINE = False
    LOCAL_REPOSITORY = os.path.join(os.path.expanduser("~"), ".depstage", "repository")

    # Extensions of resolved artifacts kept in the session's resolved set
    CACHEABLE_EXTENSIONS = ["jar"]
    FEATURE_PACK_EXTENSIONS = ["zip"]

    # Installation layout, relative to the installation base directory
    METADATA_DIR = ".installation"
    MANIFEST_FILE = "manifest.yaml"
    CHANNELS_FILE = "installer-channels.yaml"
    MANIFEST_VERSIONS_FILE = "manifest_version.yaml"
    HISTORY_FILE = "history.json"
    CACHE_DIR = ".cache"
    CACHE_INDEX_FILE = "artifacts.txt"
    MARKER_FILE = ".candidate.txt"
    # written when a build starts; tells a failed candidate apart from a live installation
    BUILD_SENTINEL = ".candidate-build"
    GALLEON_DIR = ".galleon"
    PROVISIONING_FILE = "provisioning.xml"
    MODULES_DIR = "modules"
    MODULE_DESCRIPTOR = "module.xml"

    MANIFEST_CLASSIFIER = "manifest"
    MANIFEST_EXTENSION = "yaml"
    MANIFEST_SCHEMA_VERSION = "1.0.0"
    EXPORT_SYSTEM_PATHS = "export-system-paths"

    ENV_CONFIG = "DEPSTAGE_CONFIG"
    ENV_LOG_LEVEL = "DEPSTAGE_LOG_LEVEL"
    DEFAULT_CONFIG_PATHS = [
        os.path.join(os.path.expanduser("~"), ".config", "depstage", "depstage.yml"),
        "depstage.yml",
    ]


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML configuration file.

    Precedence: explicit path, then DEPSTAGE_CONFIG, then the default locations.
    A missing or unreadable file yields an empty dict.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidates = []
    if path:
        candidates.append(path)
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        candidates.append(env_path)
    candidates.extend(Constants.DEFAULT_CONFIG_PATHS)

    for candidate in candidates:
        if not os.path.isfile(candidate):
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Unable to read config %s: %s", candidate, exc)
            return {}
        if isinstance(data, dict):
            logger.debug("Loaded configuration from %s", candidate)
            return data
        return {}
    return {}


def apply_config(cfg: Dict[str, Any]) -> None:
    """Apply settings from a loaded config dict onto Constants."""
    http = cfg.get("http") or {}
    if "timeout" in http:
        Constants.REQUEST_TIMEOUT = int(http["timeout"])
    if "retries" in http:
        Constants.HTTP_RETRY_MAX = max(1, int(http["retries"]))
    if "cache_ttl" in http:
        Constants.HTTP_CACHE_TTL_SEC = int(http["cache_ttl"])

    resolution = cfg.get("resolution") or {}
    if "offline" in resolution:
        Constants.OFFLINE = bool(resolution["offline"])
    if resolution.get("local_repository"):
        Constants.LOCAL_REPOSITORY = os.path.expanduser(str(resolution["local_repository"]))
    if resolution.get("cacheable_extensions"):
        Constants.CACHEABLE_EXTENSIONS = [str(e) for e in resolution["cacheable_extensions"]]
    if resolution.get("feature_pack_extensions"):
        Constants.FEATURE_PACK_EXTENSIONS = [str(e) for e in resolution["feature_pack_extensions"]]


def apply_cli_overrides(args) -> None:
    """Apply CLI overrides; these take precedence over the YAML config."""
    if getattr(args, "OFFLINE", False):
        Constants.OFFLINE = True
    if getattr(args, "LOCAL_REPOSITORY", None):
        Constants.LOCAL_REPOSITORY = os.path.expanduser(args.LOCAL_REPOSITORY)
    if getattr(args, "TIMEOUT", None) is not None:
        Constants.REQUEST_TIMEOUT = int(args.TIMEOUT)
