from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser


def require_roles(*roles: str):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        current_user: CurrentUser = Depends(require_roles("SUPER_ADMIN", "STAFF"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker


require_admin = require_roles("SUPER_ADMIN")
require_staff_or_admin = require_roles("SUPER_ADMIN", "STAFF")
require_student = require_roles("STUDENT")
require_staff = require_roles("STAFF")
