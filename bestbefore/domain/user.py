"""Authenticated user and session state."""

from pydantic import BaseModel, Field


class AuthUser(BaseModel):
    """The signed-in account that owns products and queue entries."""

    id: str = Field(..., description="User ID issued by the auth provider")
    email: str | None = Field(default=None, description="Account email")


class Session:
    """Holds the current user, if any.

    Sign-in flows live outside this package; they only report the result here.
    """

    def __init__(self, user: AuthUser | None = None) -> None:
        self._user = user

    @property
    def user(self) -> AuthUser | None:
        return self._user

    @property
    def user_id(self) -> str | None:
        return self._user.id if self._user else None

    def sign_in(self, user: AuthUser) -> None:
        self._user = user

    def sign_out(self) -> None:
        self._user = None
