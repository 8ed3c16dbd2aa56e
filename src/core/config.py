"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, ValidationError

from src.core.exceptions import ConfigError
from src.core.retry import RetryPolicy
from src.core.types import (
    LookupMode,
    MessageTemplate,
    MonitoredItem,
    TemplateSelection,
)

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class InlineCredential(BaseModel):
    """Password given directly in the config file."""

    value: SecretStr


class FileCredential(BaseModel):
    """Password read from a separate file (e.g. a mounted secret)."""

    path: Path


Credential = InlineCredential | FileCredential


def resolve_credential(credential: Credential, service: str) -> SecretStr:
    """Turn a configured credential into the secret itself.

    File contents are stripped of surrounding whitespace.

    Raises:
        ConfigError: If the password file cannot be read.
    """
    if isinstance(credential, FileCredential):
        try:
            return SecretStr(credential.path.read_text().strip())
        except OSError as exc:
            raise ConfigError(
                f"failed to read {service} password from '{credential.path}'"
            ) from exc
    return credential.value


def _credential(
    password: SecretStr | None, password_file: str | None
) -> Credential | None:
    # A password file wins over an inline password.
    if password_file:
        return FileCredential(path=Path(password_file))
    if password is not None and password.get_secret_value():
        return InlineCredential(value=password)
    return None


_DEFAULT_MESSAGES = [
    MessageTemplate(
        plain=(
            "Heads up! Only {quantity} of {name} left (threshold: {threshold}). "
            "Time to restock!"
        ),
        html=(
            "⚠️ <b>Heads up!</b> Only <b>{quantity}</b> of <code>{name}</code> "
            "left (threshold was <i>{threshold}</i>). Time to restock! 🛒"
        ),
    ),
    MessageTemplate(
        plain="We are running low on {name}: just {quantity} remaining.",
        html=(
            "We are running low on <code>{name}</code>: just "
            "<b>{quantity}</b> remaining. 📦"
        ),
    ),
]


class ItemConfig(BaseModel):
    """One inventory item to watch."""

    id: str
    threshold: int = 5

    def to_monitored_item(self) -> MonitoredItem:
        return MonitoredItem(external_id=self.id, threshold=self.threshold)


class MatrixConfig(BaseModel):
    """Matrix account, target room and alert templates."""

    user: str = "@bot:example.com"
    password: SecretStr | None = SecretStr("")
    password_file: str | None = None
    room_id: str = "!aslkdfasdlkfj1234a:example.com"
    homeserver_url: str | None = None
    device_name: str = "homebox-alert-bot"
    template_selection: TemplateSelection = TemplateSelection.RANDOM
    retry: RetryPolicy = RetryPolicy()
    messages: list[MessageTemplate] = list(_DEFAULT_MESSAGES)

    @property
    def credential(self) -> Credential | None:
        return _credential(self.password, self.password_file)

    def resolve_password(self) -> SecretStr:
        credential = self.credential
        if credential is None:
            raise ConfigError("either matrix password or password_file must be set")
        return resolve_credential(credential, "matrix")


class HomeBoxConfig(BaseModel):
    """HomeBox instance, account and the items to monitor."""

    base_url: str = "https://demo.homebox.software"
    username: str = "demo@example.com"
    password: SecretStr | None = SecretStr("demo")
    password_file: str | None = None
    lookup: LookupMode = LookupMode.ITEM_ID
    retry: RetryPolicy = RetryPolicy()
    items: list[ItemConfig] = [
        ItemConfig(id="00000000-0000-0000-0000-000000000000", threshold=5),
    ]

    @property
    def credential(self) -> Credential | None:
        return _credential(self.password, self.password_file)

    def resolve_password(self) -> SecretStr:
        credential = self.credential
        if credential is None:
            raise ConfigError("either homebox password or password_file must be set")
        return resolve_credential(credential, "homebox")

    def monitored_items(self) -> list[MonitoredItem]:
        return [item.to_monitored_item() for item in self.items]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Settings(BaseModel):
    """Root settings container."""

    matrix: MatrixConfig = MatrixConfig()
    homebox: HomeBoxConfig = HomeBoxConfig()
    logging: LoggingConfig = LoggingConfig()


def validate_settings(settings: Settings) -> None:
    """Check the settings are usable for a run.

    Raises:
        ConfigError: Listing every problem found.
    """
    problems: list[str] = []

    mx = settings.matrix
    if not mx.user:
        problems.append("matrix user must not be empty")
    if mx.credential is None:
        problems.append("either matrix password or password_file must be set")
    if not mx.room_id:
        problems.append("matrix room id must not be empty")
    if not mx.messages:
        problems.append("matrix messages must not be empty")
    for i, message in enumerate(mx.messages):
        if not message.plain:
            problems.append(f"matrix message {i} plain must not be empty")
        if not message.html:
            problems.append(f"matrix message {i} html must not be empty")

    hb = settings.homebox
    if not hb.base_url:
        problems.append("homebox base url must not be empty")
    if not hb.username:
        problems.append("homebox username must not be empty")
    if hb.credential is None:
        problems.append("either homebox password or password_file must be set")
    for i, item in enumerate(hb.items):
        if not item.id:
            problems.append(f"homebox item {i} id must not be empty")

    if problems:
        raise ConfigError("; ".join(problems))


def _plain(value: Any) -> Any:
    """Convert a ``model_dump()`` tree into YAML-safe builtins."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    if isinstance(value, Enum):
        return value.value
    return value


def write_default_settings(path: str | Path) -> Settings:
    """Write the default settings to *path* as YAML and return them."""
    config_path = Path(path)
    defaults = Settings()
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(
                _plain(defaults.model_dump()),
                f,
                sort_keys=False,
                allow_unicode=True,
            )
    except OSError as exc:
        raise ConfigError(f"failed to write default config to '{config_path}'") from exc
    return defaults


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    A missing file is created with the default settings.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    if not config_path.exists():
        _settings = write_default_settings(config_path)
        return _settings

    data: dict[str, Any] = {}
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"failed to read config from '{config_path}'") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config from '{config_path}'") from exc
    if isinstance(raw, dict):
        data = raw

    try:
        _settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config in '{config_path}': {exc}") from exc
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, using defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
