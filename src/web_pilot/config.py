# config.py
# Environment-driven settings. `.env` is honoured via python-dotenv.

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from web_pilot.negotiator import MAX_ROUNDS

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Raised when required settings are missing or malformed."""


class NavigatorConfig(BaseModel):
    """Settings for the planner transport and the negotiation budget."""

    api_key: str | None = None
    base_url: str | None = Field(default=None, description="OpenAI-compatible endpoint.")
    model: str = "gpt-5"
    temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    max_rounds: int = Field(default=MAX_ROUNDS, ge=1)
    quiet: bool = False

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "NavigatorConfig":
        """
        Build settings from the process environment (after loading `.env`),
        or from `env` when given.
        """
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        values: dict = {
            "api_key": env.get("OPENAI_API_KEY") or None,
            "base_url": env.get("WEB_PILOT_BASE_URL") or None,
            "quiet": env.get("WEB_PILOT_QUIET", "").strip().lower() in _TRUTHY,
        }
        for field, name in (
            ("model", "WEB_PILOT_MODEL"),
            ("temperature", "WEB_PILOT_TEMPERATURE"),
            ("max_rounds", "WEB_PILOT_MAX_ROUNDS"),
        ):
            if env.get(name):
                values[field] = env[name]

        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required.")
        return self.api_key
