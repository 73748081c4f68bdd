"""
Authentication for the R2 Relay Service.
A single shared secret passed as the `pass` query parameter.
"""

import secrets

from fastapi import HTTPException, Query, status

from relay.core.config import settings


async def verify_admin_password(
    password: str | None = Query(None, alias="pass", description="Shared admin secret")
) -> str:
    """
    Verify the shared secret for the panel and the upload API.

    Args:
        password: Value of the `pass` query parameter

    Returns:
        The verified secret (the panel echoes it back to its script)

    Raises:
        HTTPException: 403 if the secret is missing or wrong
    """
    if not password or not secrets.compare_digest(password, settings.ADMIN_PASSWORD):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized",
        )
    return password
