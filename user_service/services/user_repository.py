"""
User Repository.

Owns every read and write against the ``users`` table. Callers speak the
camelCase wire vocabulary (``firstName``, ``homeArea`` ...); this module maps
it onto storage columns, builds the filter/sort/paginate queries for the
listing endpoint and turns storage-level uniqueness failures into
:class:`~user_service.errors.ConflictError`.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from user_service.database import Database
from user_service.errors import ConflictError, NotFoundError, ValidationError
from user_service.models.user import User, UserRole, UserStatus, utcnow
from user_service.schemas import UserRead, normalize_time

logger = logging.getLogger(__name__)

users = User.__table__

# Wire field -> storage column
FIELD_COLUMNS: Dict[str, str] = {
    "email": "email",
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "status": "status",
    "role": "role",
    "homeArea": "home_area",
    "preferredDepartureTime": "preferred_departure_time",
    "googleId": "google_id",
}

REQUIRED_FIELDS = ("email", "firstName", "lastName")

# Only these keys may reach ORDER BY; both spellings are accepted
SORT_COLUMNS: Dict[str, str] = {
    "id": "id",
    "email": "email",
    "firstName": "first_name",
    "first_name": "first_name",
    "lastName": "last_name",
    "last_name": "last_name",
    "status": "status",
    "role": "role",
    "homeArea": "home_area",
    "home_area": "home_area",
    "preferredDepartureTime": "preferred_departure_time",
    "preferred_departure_time": "preferred_departure_time",
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
}

DEFAULT_SORT_COLUMN = "created_at"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class UserFilters:
    role: Optional[str] = None
    home_area: Optional[str] = None
    status: Optional[str] = None

    def conditions(self) -> list:
        clauses = []
        if self.role:
            clauses.append(users.c.role == self.role)
        if self.home_area:
            clauses.append(users.c.home_area == self.home_area)
        if self.status:
            clauses.append(users.c.status == self.status)
        return clauses

    def query_params(self) -> Dict[str, str]:
        params = {}
        if self.role:
            params["role"] = self.role
        if self.home_area:
            params["home_area"] = self.home_area
        if self.status:
            params["status"] = self.status
        return params


@dataclass(frozen=True)
class UserSort:
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    def __post_init__(self):
        if self.sort_by is not None and self.sort_by not in SORT_COLUMNS:
            allowed = ", ".join(sorted(set(SORT_COLUMNS)))
            raise ValidationError(f"Cannot sort by '{self.sort_by}'. Allowed fields: {allowed}")
        if self.sort_order is not None and self.sort_order.upper() not in ("ASC", "DESC"):
            raise ValidationError("sortOrder must be ASC or DESC")

    @property
    def column(self):
        return users.c[SORT_COLUMNS[self.sort_by] if self.sort_by else DEFAULT_SORT_COLUMN]

    @property
    def descending(self) -> bool:
        return (self.sort_order or "DESC").upper() == "DESC"

    def order_by(self) -> list:
        column = self.column
        primary = column.desc() if self.descending else column.asc()
        # id keeps page boundaries stable when the sort column has ties
        tiebreak = users.c.id.desc() if self.descending else users.c.id.asc()
        if column is users.c.id:
            return [primary]
        return [primary, tiebreak]

    def query_params(self) -> Dict[str, str]:
        params = {}
        if self.sort_by:
            params["sortBy"] = self.sort_by
        if self.sort_order:
            params["sortOrder"] = self.sort_order.upper()
        return params


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        if self.page < 1:
            raise ValidationError("page must be 1 or greater")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class UserPage:
    items: List[UserRead]
    total_count: int
    pagination: Pagination
    filters: UserFilters = field(default_factory=UserFilters)
    sort: UserSort = field(default_factory=UserSort)

    @property
    def page(self) -> int:
        return self.pagination.page

    @property
    def page_size(self) -> int:
        return self.pagination.page_size

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def _link(self, base_path: str, page: int) -> str:
        params = {**self.filters.query_params(), **self.sort.query_params()}
        params["page"] = page
        params["page_size"] = self.page_size
        return f"{base_path}?{urlencode(params)}"

    def links(self, base_path: str = "/api/users") -> Dict[str, Optional[str]]:
        return {
            "self": self._link(base_path, self.page),
            "first": self._link(base_path, 1),
            "last": self._link(base_path, max(self.total_pages, 1)),
            "next": self._link(base_path, self.page + 1) if self.has_next else None,
            "prev": self._link(base_path, self.page - 1) if self.has_prev else None,
        }


def to_columns(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Map camelCase wire fields onto storage columns."""
    values = {}
    for name, value in fields.items():
        column = FIELD_COLUMNS.get(name)
        if column is None:
            raise ValidationError(f"Unknown user field '{name}'")
        if column == "preferred_departure_time":
            try:
                value = normalize_time(value)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
        elif isinstance(value, enum.Enum):
            value = value.value
        values[column] = value
    return values


def _is_duplicate_email(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    if "google_id" in message:
        return False
    return "email" in message or "duplicate" in message or "unique" in message


class UserRepository:
    def __init__(self, database: Database):
        self.database = database

    async def list(
        self,
        filters: Optional[UserFilters] = None,
        sort: Optional[UserSort] = None,
        pagination: Optional[Pagination] = None,
    ) -> UserPage:
        filters = filters or UserFilters()
        sort = sort or UserSort()
        pagination = pagination or Pagination()

        total_count = await self.count(filters)

        query = (
            select(users)
            .where(*filters.conditions())
            .order_by(*sort.order_by())
            .limit(pagination.page_size)
            .offset(pagination.offset)
        )
        rows = await self.database.execute(query)
        return UserPage(
            items=[UserRead.model_validate(dict(row)) for row in rows],
            total_count=total_count,
            pagination=pagination,
            filters=filters,
            sort=sort,
        )

    async def count(self, filters: Optional[UserFilters] = None) -> int:
        filters = filters or UserFilters()
        query = select(func.count().label("total")).select_from(users).where(*filters.conditions())
        rows = await self.database.execute(query)
        return int(rows[0]["total"])

    async def get_by_id(self, user_id: int) -> Optional[UserRead]:
        rows = await self.database.execute(select(users).where(users.c.id == user_id))
        return UserRead.model_validate(dict(rows[0])) if rows else None

    async def get_by_email(self, email: str) -> Optional[UserRead]:
        rows = await self.database.execute(select(users).where(users.c.email == email))
        return UserRead.model_validate(dict(rows[0])) if rows else None

    async def create(self, fields: Mapping[str, Any]) -> UserRead:
        missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        if await self.get_by_email(fields["email"]) is not None:
            raise ConflictError("User with this email already exists")

        values = to_columns(fields)
        values["status"] = values.get("status") or UserStatus.ACTIVE.value
        values["role"] = values.get("role") or UserRole.STUDENT.value
        now = utcnow()
        values["created_at"] = now
        values["updated_at"] = now

        try:
            user_id = await self.database.insert(insert(users).values(**values))
        except IntegrityError as exc:
            # Lost a race with a concurrent create for the same email
            if _is_duplicate_email(exc):
                raise ConflictError("User with this email already exists") from exc
            raise

        logger.info("Created user %s (%s)", user_id, values["email"])
        return await self.get_by_id(user_id)

    async def update(self, user_id: int, fields: Mapping[str, Any]) -> UserRead:
        current = await self.get_by_id(user_id)
        if current is None:
            raise NotFoundError("User not found")

        new_email = fields.get("email")
        if new_email and new_email != current.email:
            existing = await self.get_by_email(new_email)
            if existing is not None and existing.id != user_id:
                raise ConflictError("Email already exists")

        values = to_columns(fields)
        values["updated_at"] = utcnow()

        try:
            await self.database.execute(update(users).where(users.c.id == user_id).values(**values))
        except IntegrityError as exc:
            if _is_duplicate_email(exc):
                raise ConflictError("Email already exists") from exc
            raise

        updated = await self.get_by_id(user_id)
        if updated is None:
            # Deleted between the write and the re-read
            raise NotFoundError("User not found")
        return updated

    async def delete(self, user_id: int) -> bool:
        removed = await self.database.execute(delete(users).where(users.c.id == user_id))
        if removed:
            logger.info("Deleted user %s", user_id)
        return removed > 0
