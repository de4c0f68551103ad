"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create  → request bodies (write)
  - *Response → response bodies (read)
  - *Brief / *Option → compact read representations
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hrms.common.constants import UserRole


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    code: Optional[str] = Field(None, max_length=20)


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    code: Optional[str] = None
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Role master
# ═════════════════════════════════════════════════════════════════════


class RoleDefinitionCreate(BaseModel):
    """Payload for adding a role to the role master."""

    name: str = Field(..., min_length=1, max_length=50)
    role_rank: int = Field(..., ge=1, le=99)
    wfh_enabled: bool = False
    is_active: bool = True


class RoleDefinitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    role_rank: int
    wfh_enabled: bool
    is_active: bool


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class EmployeeCreate(BaseModel):
    """Payload for creating an employee.

    ``role_rank`` defaults to the rank configured for ``role`` in the role master.
    """

    emp_code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=255)
    role: UserRole = UserRole.employee
    role_rank: Optional[int] = Field(None, ge=1, le=99)
    department_id: Optional[uuid.UUID] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    join_date: Optional[date] = None
    active: bool = True


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    emp_code: str
    name: str
    role: UserRole
    role_rank: int
    department_id: Optional[uuid.UUID] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    join_date: Optional[date] = None
    active: bool
    created_at: Optional[datetime] = None


class ManagerOption(BaseModel):
    """Candidate reporting manager for a target rank."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    emp_code: str
    name: str
    role: UserRole
    role_rank: int
    department_id: Optional[uuid.UUID] = None
    preferred: bool = True


class ManagerOptionsResponse(BaseModel):
    target_role_rank: int
    allowed_ranks: list[int]
    items: list[ManagerOption]
    total: int
