"""Settings for qas-cli, loaded from environment variables."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qas_cli.core.exceptions import InputError

ENV_EXAMPLE = """QAS_TOKEN=your_token
QAS_URL=https://qas.eu1.qasphere.com"""


class Settings(BaseSettings):
    """Settings read from ``QAS_*`` variables, ``.env`` or ``.qaspherecli``."""

    model_config = SettingsConfigDict(
        env_prefix="QAS_",
        env_file=(".env", ".qaspherecli"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # QA Sphere
    token: str | None = None
    url: str | None = None

    # Logging
    log_level: str = "WARNING"
    log_json: bool = False

    @field_validator("url")
    @classmethod
    def strip_trailing_slashes(cls, value: str | None) -> str | None:
        return value.rstrip("/") if value else value

    def require_credentials(self) -> tuple[str, str]:
        """Return ``(url, token)``.

        Raises:
            InputError: If either variable is missing.
        """
        missing = [name for name, value in (("QAS_TOKEN", self.token), ("QAS_URL", self.url)) if not value]
        if missing:
            raise InputError(
                f"Missing required environment variable(s): {', '.join(missing)}. "
                f"Set them in the environment or in a .qaspherecli file:\n{ENV_EXAMPLE}"
            )
        return self.url, self.token


def get_settings() -> Settings:
    return Settings()
