"""Core HR router — employees, role master, departments.

Routes:
    /employees                  — Create employee (hierarchy validated)
    /employees/manager-options  — Candidate reporting managers for a rank
    /roles                      — List / create role master entries
    /departments                — List / create departments
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.dependencies import get_current_user, require_role
from hrms.common.constants import UserRole
from hrms.core_hr.models import Employee
from hrms.core_hr.schemas import (
    DepartmentCreate,
    DepartmentResponse,
    EmployeeCreate,
    EmployeeResponse,
    ManagerOptionsResponse,
    RoleDefinitionCreate,
    RoleDefinitionResponse,
)
from hrms.core_hr.service import DepartmentService, EmployeeService, RoleService
from hrms.database import get_db


# ═════════════════════════════════════════════════════════════════════
# Routers
# ═════════════════════════════════════════════════════════════════════

employees_router = APIRouter(prefix="", tags=["employees"])
roles_router = APIRouter(prefix="", tags=["roles"])
departments_router = APIRouter(prefix="", tags=["departments"])

_directory_admins = require_role(UserRole.hr, UserRole.admin)


# ── Employees ───────────────────────────────────────────────────────

@employees_router.post("", response_model=EmployeeResponse, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    actor: Employee = Depends(_directory_admins),
    db: AsyncSession = Depends(get_db),
):
    """Create an employee. Rank 1 must have no manager; others need a valid one."""
    return await EmployeeService.create_employee(db, body, actor_id=actor.id)


@employees_router.get("/manager-options", response_model=ManagerOptionsResponse)
async def manager_options(
    target_role_rank: int = Query(..., ge=1, le=99),
    department_id: Optional[uuid.UUID] = Query(None),
    _: Employee = Depends(_directory_admins),
    db: AsyncSession = Depends(get_db),
):
    """Reporting-manager candidates for a role rank, preferred tier first."""
    return await EmployeeService.get_manager_options(
        db, target_role_rank, department_id=department_id,
    )


@employees_router.get("/me", response_model=EmployeeResponse)
async def me(employee: Employee = Depends(get_current_user)):
    return employee


# ── Role master ─────────────────────────────────────────────────────

@roles_router.get("", response_model=list[RoleDefinitionResponse])
async def list_roles(
    include_inactive: bool = Query(False),
    _: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.list_roles(db, include_inactive=include_inactive)


@roles_router.post("", response_model=RoleDefinitionResponse, status_code=201)
async def create_role(
    body: RoleDefinitionCreate,
    actor: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.create_role(db, body, actor_id=actor.id)


# ── Departments ─────────────────────────────────────────────────────

@departments_router.get("", response_model=list[DepartmentResponse])
async def list_departments(
    _: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await DepartmentService.list_departments(db)


@departments_router.post("", response_model=DepartmentResponse, status_code=201)
async def create_department(
    body: DepartmentCreate,
    actor: Employee = Depends(_directory_admins),
    db: AsyncSession = Depends(get_db),
):
    return await DepartmentService.create_department(db, body, actor_id=actor.id)
