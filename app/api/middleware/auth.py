"""Request identity: end-user bearer JWTs and the scheduler's shared secret.

User sign-in lives in the external auth provider; this service only verifies
the access tokens it issues and reads the actor id from the `sub` claim.
"""

import hmac
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(actor_id: str, secret: str | None = None) -> str:
    """Sign a token for `actor_id` (local development and tests)."""
    return jwt.encode(
        {"sub": actor_id}, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm
    )


def decode_actor_id(token: str) -> str | None:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


async def get_optional_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    """Actor id when a valid token is present; anonymous otherwise."""
    if credentials is None:
        return None
    return decode_actor_id(credentials.credentials)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    actor_id = decode_actor_id(credentials.credentials) if credentials else None
    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor_id


def is_authorized_cron_request(authorization: str, cron_auth_key: str | None) -> bool:
    """Constant-time comparison of the Authorization header with `Bearer <key>`.

    An unset key denies every request.
    """
    if not cron_auth_key:
        logger.error("CRON_AUTH_KEY is not set. Denying all job requests.")
        return False
    expected = f"Bearer {cron_auth_key}".encode()
    return hmac.compare_digest(authorization.encode(), expected)


async def require_cron_auth(request: Request) -> None:
    if not is_authorized_cron_request(
        request.headers.get("Authorization", ""), settings.cron_auth_key
    ):
        logger.error("Unauthorized job request to %s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
