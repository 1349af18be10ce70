from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel

from user_service.auth.dependencies import get_user_repository
from user_service.errors import NotFoundError
from user_service.models.user import UserRole, UserStatus
from user_service.schemas import UserCreate, UserResponse, UserUpdate, user_with_links
from user_service.services.user_repository import (
    DEFAULT_PAGE_SIZE,
    Pagination,
    UserFilters,
    UserRepository,
    UserSort,
)

router = APIRouter(prefix="/api/users", tags=["Users"])


class PaginationMeta(BaseModel):
    totalCount: int
    page: int
    pageSize: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


class UserListResponse(BaseModel):
    data: List[UserResponse]
    pagination: PaginationMeta
    links: Dict[str, Optional[str]]


class MessageResponse(BaseModel):
    message: str


@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = Query(default=None, description="Filter by user role"),
    home_area: Optional[str] = Query(default=None, description="Filter by home area (e.g. Flushing)"),
    status_filter: Optional[UserStatus] = Query(default=None, alias="status", description="Filter by status"),
    sort_by: Optional[str] = Query(default=None, alias="sortBy", description="Field to sort by (default createdAt)"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder", description="ASC or DESC (default DESC)"),
    page: int = Query(default=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE),
    repository: UserRepository = Depends(get_user_repository),
):
    """List users with optional filtering, sorting and pagination"""
    result = await repository.list(
        UserFilters(
            role=role.value if role else None,
            home_area=home_area,
            status=status_filter.value if status_filter else None,
        ),
        UserSort(sort_by=sort_by, sort_order=sort_order),
        Pagination(page=page, page_size=page_size),
    )

    return {
        "data": [user_with_links(user) for user in result.items],
        "pagination": {
            "totalCount": result.total_count,
            "page": result.page,
            "pageSize": result.page_size,
            "totalPages": result.total_pages,
            "hasNext": result.has_next,
            "hasPrev": result.has_prev,
        },
        "links": result.links(),
    }


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, repository: UserRepository = Depends(get_user_repository)):
    user = await repository.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user_with_links(user)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    response: Response,
    repository: UserRepository = Depends(get_user_repository),
):
    """Create a user; responds with a Location header pointing at it"""
    user = await repository.create(payload.model_dump(by_alias=True))
    response.headers["Location"] = f"/api/users/{user.id}"
    return user_with_links(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    repository: UserRepository = Depends(get_user_repository),
):
    """Partial update: fields left out of the body keep their values"""
    fields: Dict[str, Any] = payload.model_dump(by_alias=True, exclude_unset=True)
    user = await repository.update(user_id, fields)
    return user_with_links(user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: int, repository: UserRepository = Depends(get_user_repository)):
    if not await repository.delete(user_id):
        raise NotFoundError("User not found")
    return {"message": "User deleted successfully"}
