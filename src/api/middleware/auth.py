"""JWT authentication utilities for tokens issued by the auth service."""

from enum import Enum
from typing import Any

import jwt

from src.core.config import get_settings
from src.schemas.auth import TokenPayload

JWT_ALGORITHM = "HS256"


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """Authentication error with specific error code.

    Raised when JWT validation fails for any reason.
    The error code indicates the specific failure reason.
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


def decode_jwt(token: str) -> TokenPayload:
    """Decode and validate an access token.

    Args:
        token: The JWT token string to decode.

    Returns:
        TokenPayload: Validated token payload.

    Raises:
        AuthError: If the secret is unset, or the token is invalid, expired,
            or signed with another key.
    """
    secret = get_settings().auth_jwt_secret
    if not secret:
        raise AuthError("Token secret not configured", AuthErrorCode.INVALID_TOKEN)

    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": False,
                "require": ["exp", "iat", "sub"],
            },
        )
        return TokenPayload.model_validate(payload)

    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED) from e

    except jwt.InvalidSignatureError as e:
        raise AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE) from e

    except jwt.MissingRequiredClaimError as e:
        raise AuthError(f"Token missing required claim: {e}", AuthErrorCode.INVALID_TOKEN) from e

    except jwt.DecodeError as e:
        raise AuthError(f"Invalid token format: {e}", AuthErrorCode.INVALID_TOKEN) from e

    except Exception as e:
        raise AuthError(f"Token validation failed: {e}", AuthErrorCode.INVALID_TOKEN) from e
