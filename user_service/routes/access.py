from typing import Optional

from fastapi import APIRouter, Depends

from user_service.auth.dependencies import AuthContext, get_optional_auth, require_role
from user_service.models.user import UserRole
from user_service.schemas import UserRead, user_with_links

router = APIRouter(prefix="/api/access", tags=["Access"])

require_staff = require_role([UserRole.STAFF, UserRole.FACULTY])


@router.get("/staff")
async def staff_access(current_user: UserRead = Depends(require_staff)):
    """Staff and faculty only"""
    return {
        "message": "Staff access granted",
        "userId": current_user.id,
        "userEmail": current_user.email,
        "userRole": current_user.role.value,
    }


@router.get("/whoami")
async def whoami(context: Optional[AuthContext] = Depends(get_optional_auth)):
    """Identify the caller when a valid token is presented; anonymous otherwise"""
    if context is None:
        return {"authenticated": False, "user": None}
    return {"authenticated": True, "user": user_with_links(context.user)}
