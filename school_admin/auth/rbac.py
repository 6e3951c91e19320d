from fastapi import Depends, HTTPException, status

from school_admin.auth.dependencies import get_current_user
from school_admin.auth.schemas import CurrentUser
from school_admin.core.enums import UserRole

ADMIN_ONLY = (UserRole.ADMINISTRATOR,)
FEE_STAFF = (UserRole.ADMINISTRATOR, UserRole.ACCOUNTANT)
ALL_STAFF = (UserRole.ADMINISTRATOR, UserRole.ACCOUNTANT, UserRole.TEACHER)


def require_roles(*roles: UserRole):
    """
    Dependency factory to restrict an endpoint to the given roles.

    Example:
        Depends(require_roles(UserRole.ADMINISTRATOR, UserRole.ACCOUNTANT))
    """
    allowed = {UserRole(r) for r in roles}

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker
