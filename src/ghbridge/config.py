"""ghbridge configuration management.

Handles persistent settings stored in ~/.ghbridge/config.json
"""

import json
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Optional

from ghbridge.client.cache import DEFAULT_MAX_ENTRIES, DEFAULT_TTL, ResponseCache
from ghbridge.client.executor import DEFAULT_API_URL, DEFAULT_PREVIEWS, ClientSettings
from ghbridge.client.upload import DEFAULT_CHUNK_SIZE


# Default configuration values
DEFAULT_TIMEOUT = 30.0
TOKEN_ENV_VAR = "GITHUB_TOKEN"
API_URL_ENV_VAR = "GHBRIDGE_API_URL"


@dataclass
class GhBridgeConfig:
    """ghbridge application configuration."""

    # Connection
    api_url: str = DEFAULT_API_URL
    username: Optional[str] = None
    organization: Optional[str] = None
    previews: list[str] = field(default_factory=lambda: list(DEFAULT_PREVIEWS))
    timeout: float = DEFAULT_TIMEOUT

    # Uploads
    upload_chunk_size: int = DEFAULT_CHUNK_SIZE

    # Conditional GET cache (off unless enabled)
    cache_enabled: bool = False
    cache_max_entries: int = DEFAULT_MAX_ENTRIES
    cache_ttl: float = DEFAULT_TTL

    # Pagination cap; None follows every next link
    max_pages: Optional[int] = None

    # Named repository connections, see ghbridge.credentials.resource_from_dict
    resources: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        return Path.home() / ".ghbridge" / "config.json"

    @classmethod
    def load(cls) -> "GhBridgeConfig":
        """Load configuration from file, or return defaults if not found."""
        config_path = cls.get_config_path()

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                # Only use known fields to avoid issues with old config versions
                known_fields = {f.name for f in fields(cls)}
                filtered_data = {k: v for k, v in data.items() if k in known_fields}
                return cls(**filtered_data)
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
                # Invalid config, return defaults
                pass

        return cls()

    def save(self) -> None:
        """Save configuration to file."""
        config_path = self.get_config_path()

        # Ensure directory exists
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    def reset(self) -> None:
        """Reset configuration to defaults."""
        for f in fields(self):
            setattr(self, f.name, getattr(type(self)(), f.name))

    def set_value(self, key: str, value: str) -> None:
        """Set a scalar setting from its string form (as typed on the CLI)."""
        known = {f.name: f for f in fields(self)}
        if key not in known or key == "resources":
            raise KeyError(f"Unknown setting: {key}")

        current = getattr(self, key)
        if key == "previews":
            parsed: Any = [p.strip() for p in value.split(",") if p.strip()]
        elif value.lower() in ("", "none", "null") and key in ("username", "organization", "max_pages"):
            parsed = None
        elif isinstance(current, bool) or key == "cache_enabled":
            parsed = value.lower() in ("1", "true", "yes", "on")
        elif key in ("upload_chunk_size", "cache_max_entries", "max_pages"):
            parsed = int(value)
        elif key in ("timeout", "cache_ttl"):
            parsed = float(value)
        else:
            parsed = value
        setattr(self, key, parsed)

    def resolve_api_url(self) -> str:
        """API URL from the environment, falling back to the saved setting."""
        return os.environ.get(API_URL_ENV_VAR) or self.api_url or DEFAULT_API_URL

    def to_settings(
        self,
        token: Optional[str] = None,
        username: Optional[str] = None,
        api_url: Optional[str] = None,
    ) -> ClientSettings:
        """Build client settings; explicit arguments win over saved values."""
        return ClientSettings(
            api_url=api_url or self.resolve_api_url(),
            username=username or self.username,
            token=token or os.environ.get(TOKEN_ENV_VAR),
            previews=list(self.previews),
            timeout=self.timeout,
        )

    def build_cache(self) -> Optional[ResponseCache]:
        """Create the response cache, or None when caching is disabled."""
        if not self.cache_enabled:
            return None
        return ResponseCache(max_entries=self.cache_max_entries, ttl=self.cache_ttl)


# Settings editable with `ghbridge config set`
EDITABLE_SETTINGS = [
    ("api_url", "API base URL"),
    ("username", "User name for basic authentication"),
    ("organization", "Default organization"),
    ("previews", "Comma separated preview media types"),
    ("timeout", "Request timeout in seconds"),
    ("upload_chunk_size", "Upload chunk size in bytes"),
    ("cache_enabled", "Enable conditional GET cache"),
    ("cache_max_entries", "Maximum cached responses"),
    ("cache_ttl", "Cached response lifetime in seconds"),
    ("max_pages", "Maximum pages per listing (none = unlimited)"),
]
