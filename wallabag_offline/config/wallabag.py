from __future__ import annotations

import logging
import subprocess
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

CREDENTIAL_COMMAND_TIMEOUT = 30.0

# Credentials that may be given literally or as a command printing the value.
_CREDENTIAL_FIELDS = ("client_id", "client_secret", "username", "password")


def run_credential_command(command: str) -> str:
    """Run a shell command and return its stdout without the trailing newline.

    Lets secrets come from a password manager (``pass show wallabag``)
    instead of living in the environment.
    """
    try:
        completed = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            check=False,
            timeout=CREDENTIAL_COMMAND_TIMEOUT,
        )
    except subprocess.TimeoutExpired as exc:
        msg = f"Credential command timed out after {CREDENTIAL_COMMAND_TIMEOUT:g}s"
        raise ValueError(msg) from exc
    if completed.returncode != 0:
        msg = f"Credential command exited with status {completed.returncode}"
        raise ValueError(msg)
    value = completed.stdout.rstrip("\r\n")
    if not value:
        msg = "Credential command produced no output"
        raise ValueError(msg)
    return value


class WallabagConfig(BaseModel):
    """wallabag server address and OAuth credentials."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(default="", validation_alias="WALLABAG_URL")
    client_id: str = Field(default="", validation_alias="WALLABAG_CLIENT_ID")
    client_id_cmd: str | None = Field(default=None, validation_alias="WALLABAG_CLIENT_ID_CMD")
    client_secret: str = Field(default="", validation_alias="WALLABAG_CLIENT_SECRET")
    client_secret_cmd: str | None = Field(
        default=None, validation_alias="WALLABAG_CLIENT_SECRET_CMD"
    )
    username: str = Field(default="", validation_alias="WALLABAG_USERNAME")
    username_cmd: str | None = Field(default=None, validation_alias="WALLABAG_USERNAME_CMD")
    password: str = Field(default="", validation_alias="WALLABAG_PASSWORD")
    password_cmd: str | None = Field(default=None, validation_alias="WALLABAG_PASSWORD_CMD")
    timeout_sec: float = Field(default=30.0, validation_alias="WALLABAG_TIMEOUT_SEC")
    max_retries: int = Field(default=3, validation_alias="WALLABAG_MAX_RETRIES")

    @model_validator(mode="before")
    @classmethod
    def _resolve_credential_commands(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resolved = dict(data)
        for name in _CREDENTIAL_FIELDS:
            alias = cls.model_fields[name].validation_alias
            cmd_alias = cls.model_fields[f"{name}_cmd"].validation_alias
            value = resolved.get(alias, resolved.get(name))
            command = resolved.get(cmd_alias, resolved.get(f"{name}_cmd"))
            if value in (None, "") and command:
                logger.debug("wallabag_credential_from_command", extra={"field": name})
                resolved[alias] = run_credential_command(str(command))
        return resolved

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        url = str(value or "").strip()
        if url and not url.startswith(("http://", "https://")):
            msg = "WALLABAG_URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("client_id", "client_secret", "username", "password", mode="before")
    @classmethod
    def _validate_credential(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        credential = str(value).strip()
        if len(credential) > 500:
            msg = "wallabag credential appears to be too long"
            raise ValueError(msg)
        return credential

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        try:
            timeout = float(str(value if value not in (None, "") else 30.0))
        except ValueError as exc:
            msg = "wallabag timeout must be a number"
            raise ValueError(msg) from exc
        if timeout <= 0 or timeout > 600:
            msg = "wallabag timeout must be between 0 and 600 seconds"
            raise ValueError(msg)
        return timeout

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 3))
        except ValueError as exc:
            msg = "wallabag max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 10:
            msg = "wallabag max retries must be between 0 and 10"
            raise ValueError(msg)
        return parsed

    def missing_fields(self) -> list[str]:
        """Names of the env variables still needed to talk to the server."""
        required = ("url", *_CREDENTIAL_FIELDS)
        return [
            str(type(self).model_fields[name].validation_alias)
            for name in required
            if not getattr(self, name)
        ]
