# =============================================================================
# assessment_core/config.py
# Runtime settings: Supabase credentials, local store location, sync knobs
# =============================================================================
"""
Settings are resolved in this order (first hit wins per key):

1. Explicit keyword arguments to ``Settings.load``
2. Environment variables (a ``.env`` file is loaded first if present)
3. ``.streamlit/secrets.toml`` ``[supabase]`` table

Expected secrets.toml format:
    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
    bucket = "training_materials"
"""

from __future__ import annotations
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from assessment_core.errors import ConfigurationError
from assessment_core.logging import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_SECRETS_PATH = PROJECT_ROOT / ".streamlit" / "secrets.toml"
DEFAULT_DB_PATH = PROJECT_ROOT / "local_data" / "skill_assessment.db"

ENV_KEYS = {
    "supabase_url": "SUPABASE_URL",
    "supabase_key": "SUPABASE_KEY",
    "storage_bucket": "SUPABASE_BUCKET",
    "local_db_path": "ASSESSMENT_DB_PATH",
    "page_size": "ASSESSMENT_PAGE_SIZE",
    "sync_timeout": "ASSESSMENT_SYNC_TIMEOUT",
    "log_level": "ASSESSMENT_LOG_LEVEL",
}


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """
    Immutable runtime configuration.

    Attributes:
        supabase_url: Project URL, e.g. https://xyz.supabase.co
        supabase_key: Anon or service key
        storage_bucket: Bucket holding attachment payloads
        local_db_path: SQLite file backing the local persistent store
        page_size: Rows per ranged read (PostgREST caps responses at 1000)
        sync_timeout: Seconds before refresh_or_cached gives up on the network
        invalidate_on_remote_delete_failure: Drop the cached attachment even
            when the bucket delete fails
        log_level: Root logging level name
        log_to_file: Also write logs under ./logs
    """
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_bucket: str = "training_materials"
    local_db_path: Path = DEFAULT_DB_PATH
    page_size: int = 1000
    sync_timeout: Optional[float] = None
    invalidate_on_remote_delete_failure: bool = True
    log_level: str = "INFO"
    log_to_file: bool = False

    @property
    def has_remote(self) -> bool:
        """True when both Supabase URL and key are configured."""
        return bool(self.supabase_url and self.supabase_key)

    def require_remote(self) -> None:
        """Raise ConfigurationError unless Supabase credentials are present."""
        if not self.supabase_url:
            raise ConfigurationError("Supabase URL is not configured", config_key="SUPABASE_URL")
        if not self.supabase_key:
            raise ConfigurationError("Supabase key is not configured", config_key="SUPABASE_KEY")

    def with_overrides(self, **overrides: Any) -> Settings:
        return replace(self, **overrides)

    @classmethod
    def load(
        cls,
        secrets_path: Optional[Path] = None,
        env_file: Optional[Path] = None,
        **overrides: Any,
    ) -> Settings:
        """
        Build settings from .env, the environment and secrets.toml.

        Args:
            secrets_path: Alternate secrets.toml location
            env_file: Alternate .env location (default: search upwards from cwd)
            **overrides: Values that win over every other source

        Returns:
            Settings instance
        """
        load_dotenv(dotenv_path=env_file, override=False)

        values: Dict[str, Any] = {}
        values.update(_load_secrets(secrets_path or DEFAULT_SECRETS_PATH))
        values.update(_load_env())
        values.update({k: v for k, v in overrides.items() if v is not None})

        if "local_db_path" in values:
            values["local_db_path"] = Path(values["local_db_path"])
        if "page_size" in values:
            values["page_size"] = int(values["page_size"])
        if values.get("sync_timeout") is not None:
            values["sync_timeout"] = float(values["sync_timeout"])

        settings = cls(**values)
        logger.debug(
            f"Settings loaded (remote configured: {settings.has_remote}, "
            f"db: {settings.local_db_path})"
        )
        return settings


def _load_env() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field_name, env_key in ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw:
            values[field_name] = raw

    flag = os.getenv("ASSESSMENT_INVALIDATE_ON_DELETE_FAILURE")
    if flag:
        values["invalidate_on_remote_delete_failure"] = _truthy(flag)

    log_file = os.getenv("ASSESSMENT_LOG_TO_FILE")
    if log_file:
        values["log_to_file"] = _truthy(log_file)
    return values


def _load_secrets(path: Path) -> Dict[str, Any]:
    """Read the [supabase] table of a Streamlit-style secrets.toml."""
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            secrets = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        logger.warning(f"Could not read secrets file {path}: {e}")
        return {}

    supabase = secrets.get("supabase", {})
    values: Dict[str, Any] = {}
    if supabase.get("url"):
        values["supabase_url"] = supabase["url"]
    if supabase.get("key"):
        values["supabase_key"] = supabase["key"]
    if supabase.get("bucket"):
        values["storage_bucket"] = supabase["bucket"]
    return values
