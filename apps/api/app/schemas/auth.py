"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ROLE = "creator"


class AuthPrincipal(BaseModel):
    """Authenticated caller; ``user_id`` is the owner key for jobs, segments and allowance."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    role: str = Field(default=DEFAULT_ROLE, min_length=1)


__all__ = ["DEFAULT_ROLE", "AuthPrincipal"]
