"""Resolve ``sm://`` Secret Manager references in configuration values.

Accepted forms:
 - ``sm://name`` / ``sm://name:7``  (project taken from configuration)
 - ``sm://projects/p/secrets/name`` / ``sm://projects/p/secrets/name:7``
"""

from __future__ import annotations

from typing import Any

from src.errors import ConfigurationError

try:  # pragma: no cover - optional dependency for local runs
    from google.cloud import secretmanager  # type: ignore
except Exception:  # pragma: no cover
    secretmanager = None  # type: ignore

SM_PREFIX = "sm://"
_CACHE: dict[str, str] = {}


def secret_version_path(reference: str, project_id: str | None) -> str:
    """Translate the part after ``sm://`` into a full secret version path."""
    body = reference.strip()
    if not body:
        raise ConfigurationError("Empty Secret Manager reference")
    name, _, version = body.partition(":")
    name = name.strip().rstrip("/")
    version = version.strip() or "latest"
    if "/versions/" in name:
        return name
    if name.startswith("projects/"):
        return f"{name}/versions/{version}"
    if not project_id:
        raise ConfigurationError(f"PROJECT_ID is required to resolve sm://{body}")
    return f"projects/{project_id}/secrets/{name}/versions/{version}"


def resolve_secret(value: Any, *, project_id: str | None = None) -> Any:
    """Return ``value`` unchanged unless it is an ``sm://`` reference."""
    if not isinstance(value, str) or not value.strip().startswith(SM_PREFIX):
        return value
    reference = value.strip()
    if reference in _CACHE:
        return _CACHE[reference]
    if secretmanager is None:
        raise ConfigurationError("google-cloud-secret-manager is not installed")

    path = secret_version_path(reference[len(SM_PREFIX) :], project_id)
    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(name=path)
    except Exception as exc:
        raise ConfigurationError(f"Failed to access secret {path}: {exc}") from exc

    data = getattr(getattr(response, "payload", None), "data", None)
    if not data:
        raise ConfigurationError(f"Secret {path} has no payload")
    resolved = data.decode("utf-8")
    _CACHE[reference] = resolved
    return resolved


def clear_secret_cache() -> None:
    _CACHE.clear()


__all__ = ["resolve_secret", "secret_version_path", "clear_secret_cache", "SM_PREFIX"]
