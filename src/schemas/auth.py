"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    This model represents the authenticated user for the current request.
    It is populated by the auth dependency from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: int = Field(description="Numeric user id (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'user', 'admin')")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class TokenPayload(BaseModel):
    """Claims of an access token issued by the auth service."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    sub: str = Field(description="Subject - the user's numeric id as a string")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="User's role")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")

    @field_validator("sub", mode="before")
    @classmethod
    def sub_as_string(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Raises:
            ValueError: If the subject is not a numeric user id.
        """
        return UserContext(user_id=int(self.sub), email=self.email, role=self.role)
