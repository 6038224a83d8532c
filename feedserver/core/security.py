from fastapi import Header, HTTPException, status
from feedserver.core.config import settings

def require_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    # No token configured: mutating endpoints are open
    if settings.admin_token is None:
        return
    if not x_admin_token or x_admin_token != settings.admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
