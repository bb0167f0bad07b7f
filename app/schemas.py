"""
Request bodies and session/token shapes shared by the auth routes and RPC procedures.

JSON field names follow the frontend (camelCase) through aliases.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from config import MIN_PASSWORD_LENGTH

NEW_PASSWORD_REQUIRED = "NEW_PASSWORD_REQUIRED"


class TokenSet(BaseModel):
    """Tokens issued by the identity provider. refresh_token is absent after a refresh."""

    access_token: str
    id_token: str
    refresh_token: str | None = None


class Challenge(BaseModel):
    """Returned by sign-in instead of tokens when the provider demands more input."""

    name: str
    session: str
    username: str
    parameters: dict[str, str] = Field(default_factory=dict)


class SessionUser(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    image: str | None = None


class AppSession(BaseModel):
    """The application's view of the signed-in user, rebuilt from the id token on every request."""

    user: SessionUser
    expires: str | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignInRequest(_CamelModel):
    username: str | None = None
    password: str | None = None


class ChangePasswordRequest(_CamelModel):
    session: str | None = None
    new_password: str | None = Field(None, alias="newPassword")
    username: str | None = None


# RPC inputs are validated strictly before any provider call


class SignInInput(_CamelModel):
    username: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordInput(_CamelModel):
    session: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=MIN_PASSWORD_LENGTH)
    username: str | None = None


class CreatePostInput(BaseModel):
    name: str = Field(..., min_length=1)


class CreateTodoInput(BaseModel):
    title: str = Field(..., min_length=1)


class TodoIdInput(BaseModel):
    id: int
