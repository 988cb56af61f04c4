"""
Reflecta API - Authentication Middleware.

Shared-secret bearer verification for the trigger and processor endpoints.
"""

import secrets
from typing import Optional

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from settings import settings


class CronSecretBearer(HTTPBearer):
    """
    Bearer authentication against `CRON_SECRET`.

    Skipped entirely in development. Outside development a missing
    secret configuration rejects every request rather than letting
    them through.
    """

    def __init__(self):
        super().__init__(auto_error=False)

    async def __call__(self, request: Request) -> Optional[str]:
        """
        Verify the bearer token from the Authorization header.

        Args:
            request: FastAPI request object.

        Returns:
            Optional[str]: The accepted token, or None in development.

        Raises:
            HTTPException: 401 if the token is missing or wrong.
        """
        if not settings.auth_required:
            return None

        credentials: Optional[HTTPAuthorizationCredentials] = await super().__call__(request)

        if not credentials or credentials.scheme.lower() != "bearer":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not settings.CRON_SECRET or not secrets.compare_digest(
            credentials.credentials, settings.CRON_SECRET
        ):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return credentials.credentials


# Global bearer instance for dependency injection
cron_bearer = CronSecretBearer()


async def verify_cron_secret(token: Optional[str] = Depends(cron_bearer)) -> None:
    """
    Dependency guarding scheduler-facing endpoints.

    Usage:
        @router.post("/processor", dependencies=[Depends(verify_cron_secret)])
    """
    return None
