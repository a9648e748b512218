"""Exception types for configuration handling."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a monitor setting is missing, unparsable or out of range."""

    @classmethod
    def unset(cls, name: str) -> "ConfigurationError":
        return cls(f"Required setting {name!r} is not set")

    @classmethod
    def not_a_number(cls, name: str, raw: str, kind: str) -> "ConfigurationError":
        """Create error for an environment value that cannot be coerced."""
        return cls(f"Environment variable {name!r} must be {kind} (got {raw!r})")

    @classmethod
    def invalid_endpoint(cls, url: str) -> "ConfigurationError":
        if not url:
            return cls("ws_url is missing or empty")
        return cls(f"ws_url must be a ws:// or wss:// URL (got {url!r})")

    @classmethod
    def out_of_range(cls, name: str, value, bound: str) -> "ConfigurationError":
        """Create error for a numeric setting outside its allowed range."""
        return cls(f"{name} must be {bound} (got {value!r})")

    @classmethod
    def unreadable_file(cls, kind: str, path) -> "ConfigurationError":
        return cls(f"Failed to load {kind} {path}")


__all__ = ["ConfigurationError"]
