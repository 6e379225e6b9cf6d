"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_API_BASE_URL = "https://api.curseforge.com/v1/"


class SyncConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Artifact source
    api_key: str = ""
    api_base_url: str = DEFAULT_API_BASE_URL

    # Paths
    manifest_path: str = "manifest.json"
    cache_dir: str = "dist/modcache"
    state_file: str = "dist/cache.json"
    modlist_path: str = "dist/modlist.html"

    # Reconciliation behaviour
    max_workers: int = 8
    checkpoint: bool = False
    prune_orphans: bool = True
    verify_hashes: bool = True
    metadata_cache_days: int = 1

    # Internal fields not loaded from INI file
    config_path: str = Field(default="", repr=False)

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @field_validator("metadata_cache_days")
    @classmethod
    def validate_cache_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Metadata cache age cannot be negative.")
        return v

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"API base URL must be an http(s) URL, got: {v}")
        return v if v.endswith("/") else v + "/"

    @field_validator("manifest_path", "cache_dir", "state_file", "modlist_path")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        if not v:
            raise ValueError("Paths cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_outputs_outside_cache(self) -> "SyncConfig":
        """The orphan sweep deletes every unowned file in the cache directory."""
        cache_dir = Path(self.cache_dir).resolve()
        for key in ("state_file", "modlist_path"):
            if Path(getattr(self, key)).resolve().is_relative_to(cache_dir):
                raise ValueError(f"{key} must not be inside cache_dir ({self.cache_dir}).")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
