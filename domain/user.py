from enum import Enum

from pydantic import Field

from domain.base import ApiModel


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class PublicUser(ApiModel):
    id: str
    username: str
    display_name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    email: str | None = None
    role: Role = Role.USER


class UserInDB(PublicUser):
    password_hash: str

    def public(self) -> PublicUser:
        return PublicUser.model_validate(self.model_dump(exclude={"password_hash"}))


class ProfileFields(ApiModel):
    display_name: str | None = Field(default=None, max_length=120)
    bio: str | None = Field(default=None, max_length=5000)
    avatar_url: str | None = Field(default=None, max_length=2048)
    email: str | None = Field(default=None, max_length=320)


class SignUpUser(ProfileFields):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=1024)


class LoginRequest(ApiModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserUpdate(ProfileFields):
    password: str | None = Field(default=None, min_length=1, max_length=1024)
    current_password: str | None = None
