"""Configuration management for prompt-compare.

Handles server policy (client key overrides, timeout, bind address, CORS),
file-configured provider keys, and the model roster. Configuration is
loaded from a TOML file (~/.prompt-compare/config.toml) with environment
variable overrides.

The roster is stored as edits over the seeded defaults: ``[models.<id>]``
tables add or replace entries, and ``[roster].removed`` lists default ids
the user deleted. ``Config.models`` is always the merged view.

Typical usage::

    from prompt_compare.config import load_config

    config = load_config()
    for cfg in config.active_models():
        print(cfg.instance_id, cfg.model)
"""

from __future__ import annotations

import os
import tomllib
from collections import ChainMap
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from prompt_compare.models import (
    ModelConfiguration,
    default_configurations,
    merge_configurations,
)
from prompt_compare.registry import PROVIDERS, describe

APP_DIR = Path.home() / ".prompt-compare"
CONFIG_PATH = APP_DIR / "config.toml"

DEFAULT_TIMEOUT = 25.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]

ALLOW_CLIENT_KEYS_ENV = "ALLOW_CLIENT_API_KEYS"
TIMEOUT_ENV = "PROMPT_COMPARE_TIMEOUT"
PORT_ENV = "PORT"
CORS_ENV = "PROMPT_COMPARE_CORS_ORIGINS"


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


@dataclass
class Config:
    """Application configuration.

    Attributes:
        allow_client_keys: Whether client-supplied API keys are honoured.
            Off by default; ignored keys are only logged.
        timeout: Wall-clock limit per provider call, in seconds.
        host: Proxy server bind address.
        port: Proxy server port.
        cors_origins: Browser origins allowed to call the proxy.
        provider_keys: Provider id to API key, from ``[providers]`` in
            config.toml. The environment variable wins when both are set.
        model_edits: User-added or edited configurations keyed by id.
        removed_models: Default ids the user removed.
        env_sourced: Server settings taken from environment variables.
            ``write_config()`` leaves these out of the file.
    """

    allow_client_keys: bool = False
    timeout: float = DEFAULT_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    provider_keys: dict[str, str] = field(default_factory=dict)
    model_edits: dict[str, ModelConfiguration] = field(default_factory=dict)
    removed_models: list[str] = field(default_factory=list)
    env_sourced: set[str] = field(default_factory=set, repr=False)

    @property
    def models(self) -> dict[str, ModelConfiguration]:
        """Merged roster: defaults overlaid with edits, minus removals."""
        return merge_configurations(
            default_configurations(), self.model_edits, removed=self.removed_models
        )

    def active_models(self) -> list[ModelConfiguration]:
        """Return active configurations in roster order."""
        return [cfg for cfg in self.models.values() if cfg.active]

    def get_model(self, instance_id: str) -> ModelConfiguration:
        """Look up one configuration by instance id.

        Raises:
            KeyError: If no configuration has that id.
        """
        models = self.models
        if instance_id not in models:
            raise KeyError(f"Unknown model instance '{instance_id}'.")
        return models[instance_id]

    def upsert_model(self, configuration: ModelConfiguration) -> None:
        """Add a configuration or replace the one with the same id.

        Re-adding a removed default id restores it.

        Raises:
            UnknownProviderError: If the provider id is not registered.
        """
        describe(configuration.provider_id)
        self.model_edits[configuration.instance_id] = configuration
        if configuration.instance_id in self.removed_models:
            self.removed_models.remove(configuration.instance_id)

    def remove_model(self, instance_id: str) -> None:
        """Remove a configuration from the roster.

        Raises:
            KeyError: If no configuration has that id.
        """
        self.get_model(instance_id)
        self.model_edits.pop(instance_id, None)
        if instance_id in default_configurations() and instance_id not in self.removed_models:
            self.removed_models.append(instance_id)

    def set_active(self, instance_id: str, active: bool) -> ModelConfiguration:
        """Activate or deactivate a configuration.

        Returns:
            The updated configuration.

        Raises:
            KeyError: If no configuration has that id.
        """
        current = self.get_model(instance_id)
        updated = ModelConfiguration(
            instance_id=current.instance_id,
            provider_id=current.provider_id,
            model=current.model,
            active=active,
            api_key=current.api_key,
            name=current.name,
        )
        self.model_edits[instance_id] = updated
        return updated

    def credential_environ(self, environ: Mapping[str, str] | None = None) -> Mapping[str, str]:
        """Environment view used for key resolution.

        The process environment comes first; file-configured keys fill in
        only the variables it leaves unset.

        Args:
            environ: Base environment. Defaults to ``os.environ``.

        Returns:
            Read-only mapping of variable name to value.
        """
        file_keys = {
            PROVIDERS[provider_id].credential_env: key
            for provider_id, key in self.provider_keys.items()
            if provider_id in PROVIDERS and key
        }
        base = os.environ if environ is None else environ
        return ChainMap({k: v for k, v in base.items() if v}, file_keys)


def _model_from_table(instance_id: str, table: Mapping[str, Any]) -> ModelConfiguration:
    """Build a configuration from a ``[models.<id>]`` TOML table."""
    return ModelConfiguration(
        instance_id=instance_id,
        provider_id=str(table.get("provider", "")),
        model=str(table.get("model", "")),
        active=bool(table.get("active", True)),
        api_key=table.get("api_key") or None,
        name=str(table.get("name", "")),
    )


def _apply_toml(config: Config, data: dict[str, Any]) -> None:
    """Apply parsed TOML data to a Config instance.

    Args:
        config: Config instance to populate.
        data: Parsed TOML dictionary.
    """
    # --- Server ---
    server: dict[str, Any] = data.get("server", {})
    if "allow_client_api_keys" in server:
        config.allow_client_keys = bool(server["allow_client_api_keys"])
    if "timeout" in server:
        config.timeout = float(server["timeout"])
    if "host" in server:
        config.host = str(server["host"])
    if "port" in server:
        config.port = int(server["port"])
    if "cors_origins" in server:
        config.cors_origins = [str(o) for o in server["cors_origins"]]

    # --- Providers ---
    for toml_key, value in data.get("providers", {}).items():
        # Keys are like "openai_api_key" → strip "_api_key" suffix.
        if toml_key.endswith("_api_key") and value:
            config.provider_keys[toml_key[: -len("_api_key")]] = str(value)

    # --- Models ---
    for instance_id, table in data.get("models", {}).items():
        if isinstance(table, dict):
            config.model_edits[instance_id] = _model_from_table(instance_id, table)

    roster: dict[str, Any] = data.get("roster", {})
    config.removed_models = [str(r) for r in roster.get("removed", [])]


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to server policy.

    Args:
        config: Config instance to update.
    """
    if ALLOW_CLIENT_KEYS_ENV in os.environ:
        config.allow_client_keys = _env_flag(os.environ[ALLOW_CLIENT_KEYS_ENV])
        config.env_sourced.add("allow_client_api_keys")

    timeout = os.environ.get(TIMEOUT_ENV, "")
    if timeout:
        config.timeout = float(timeout)
        config.env_sourced.add("timeout")

    port = os.environ.get(PORT_ENV, "")
    if port:
        config.port = int(port)
        config.env_sourced.add("port")

    origins = os.environ.get(CORS_ENV, "")
    if origins:
        config.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
        config.env_sourced.add("cors_origins")


def load_config() -> Config:
    """Load configuration from file and environment.

    Resolution order for each setting:
        1. Environment variable
        2. config.toml
        3. Built-in default

    Returns:
        Populated Config instance.

    Raises:
        ValueError: If an environment override is not a valid number.
    """
    config = Config()

    if CONFIG_PATH.exists():
        with open(CONFIG_PATH, "rb") as f:
            _apply_toml(config, tomllib.load(f))

    _apply_env_overrides(config)

    return config


def write_config(config: Config, path: Path | None = None) -> None:
    """Serialize a Config to TOML and write to disk.

    Only the roster edits are written for models; the seeded defaults are
    implied. Server settings that came from environment variables are
    left out so a one-off override never becomes permanent.

    If the file already exists, its permissions are preserved after write.

    Args:
        config: Config instance to serialize.
        path: File path to write. Defaults to CONFIG_PATH.
    """
    import tomlkit

    target = path or CONFIG_PATH

    # Capture existing permissions before overwriting.
    existing_mode: int | None = None
    if target.exists():
        existing_mode = target.stat().st_mode & 0o777

    doc = tomlkit.document()

    # --- Server ---
    server_table = tomlkit.table()
    server_values: dict[str, Any] = {
        "allow_client_api_keys": config.allow_client_keys,
        "timeout": config.timeout,
        "host": config.host,
        "port": config.port,
        "cors_origins": config.cors_origins,
    }
    for key, value in server_values.items():
        if key not in config.env_sourced:
            server_table.add(key, value)
    doc.add("server", server_table)

    # --- Providers ---
    providers_table = tomlkit.table()
    for provider_id, key_value in sorted(config.provider_keys.items()):
        if key_value:
            providers_table.add(f"{provider_id}_api_key", key_value)
    doc.add("providers", providers_table)

    # --- Models (edits only, in roster order) ---
    models_table = tomlkit.table(is_super_table=True)
    for instance_id, cfg in config.model_edits.items():
        entry = tomlkit.table()
        entry.add("provider", cfg.provider_id)
        entry.add("model", cfg.model)
        entry.add("active", cfg.active)
        if cfg.name:
            entry.add("name", cfg.name)
        if cfg.api_key:
            entry.add("api_key", cfg.api_key)
        models_table.add(instance_id, entry)
    doc.add("models", models_table)

    roster_table = tomlkit.table()
    roster_table.add("removed", list(config.removed_models))
    doc.add("roster", roster_table)

    # Write: parent dirs, then file.
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(tomlkit.dumps(doc), encoding="utf-8")

    # Restore permissions if file existed before.
    if existing_mode is not None:
        target.chmod(existing_mode)
