import secrets

from fastapi import Header, HTTPException, status

from wagerdesk.config import settings


async def verify_platform_key(x_platform_key: str = Header(...)):
    """Verify the shared key sent by the platform bridge with every event."""
    if not settings.PLATFORM_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Platform API key not configured on server.",
        )
    if not secrets.compare_digest(x_platform_key, settings.PLATFORM_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid platform API key.",
        )
