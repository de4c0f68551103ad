"""Core HR service layer — departments, role master, employees, reporting lines.

Uses:
  - ``create_audit_entry`` from hrms.common.audit
  - reporting-line rules from hrms.auth.authority
  - ``NotFoundException / ConflictError / ValidationException`` from hrms.common.exceptions
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.auth.authority import is_valid_reporting_line, manager_candidate_ranks
from hrms.common.audit import create_audit_entry
from hrms.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from hrms.core_hr.models import Department, Employee, RoleDefinition
from hrms.core_hr.schemas import (
    DepartmentCreate,
    EmployeeCreate,
    ManagerOption,
    ManagerOptionsResponse,
    RoleDefinitionCreate,
)


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async operations for employees and their reporting lines."""

    # ── Get single ──────────────────────────────────────────────────

    @staticmethod
    async def get_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Employee:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        data: EmployeeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Create an employee after validating the reporting hierarchy."""

        role_rank = data.role_rank
        if role_rank is None:
            role_def = (
                await db.execute(
                    select(RoleDefinition).where(
                        RoleDefinition.name == data.role.value,
                        RoleDefinition.is_active.is_(True),
                    )
                )
            ).scalars().first()
            if role_def is None:
                raise ValidationException(
                    {"role_rank": [f"No active role master entry for '{data.role.value}'."]}
                )
            role_rank = role_def.role_rank

        await EmployeeService.validate_reporting_line(
            db, role_rank, data.reporting_manager_id,
        )

        if data.department_id is not None:
            if await db.get(Department, data.department_id) is None:
                raise NotFoundException("Department", str(data.department_id))

        existing = await db.execute(
            select(Employee.id).where(Employee.emp_code == data.emp_code)
        )
        if existing.scalar() is not None:
            raise ConflictError("emp_code", data.emp_code)

        payload = data.model_dump()
        payload["role_rank"] = role_rank
        employee = Employee(**payload)
        db.add(employee)
        await db.flush()
        await db.refresh(employee)

        await create_audit_entry(
            db,
            action="create",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=actor_id,
            new_values=payload,
        )
        return employee

    # ── Reporting hierarchy ─────────────────────────────────────────

    @staticmethod
    async def validate_reporting_line(
        db: AsyncSession,
        role_rank: int,
        reporting_manager_id: Optional[uuid.UUID],
    ) -> None:
        """Raise ValidationException unless the manager fits *role_rank*."""

        if role_rank == 1:
            if reporting_manager_id is not None:
                raise ValidationException(
                    {"reporting_manager_id": ["Rank 1 employees cannot have a reporting manager."]}
                )
            return

        if reporting_manager_id is None:
            raise ValidationException(
                {"reporting_manager_id": [f"A reporting manager is required for rank {role_rank}."]}
            )

        manager = await db.get(Employee, reporting_manager_id)
        if manager is None or not manager.active:
            raise ValidationException(
                {"reporting_manager_id": ["Reporting manager must be an active employee."]}
            )
        if not is_valid_reporting_line(role_rank, manager.role_rank):
            raise ValidationException(
                {"reporting_manager_id": [
                    f"A rank {manager.role_rank} employee cannot manage rank {role_rank}."
                ]}
            )

    @staticmethod
    async def get_manager_options(
        db: AsyncSession,
        target_role_rank: int,
        *,
        department_id: Optional[uuid.UUID] = None,
    ) -> ManagerOptionsResponse:
        """Candidate managers for *target_role_rank*, preferred tier first.

        The preferred tier is narrowed to *department_id* when one is given;
        the fallback tier is company-wide and is only offered when the
        preferred tier has no candidates.
        """

        preferred, fallback = manager_candidate_ranks(target_role_rank)

        async def _load(ranks: tuple[int, ...], dept: Optional[uuid.UUID]) -> list[Employee]:
            if not ranks:
                return []
            query = (
                select(Employee)
                .where(Employee.active.is_(True), Employee.role_rank.in_(ranks))
                .order_by(Employee.role_rank, Employee.name)
            )
            if dept is not None:
                query = query.where(Employee.department_id == dept)
            return list((await db.execute(query)).scalars().all())

        options: list[ManagerOption] = [
            ManagerOption.model_validate(emp)
            for emp in await _load(preferred, department_id if fallback else None)
        ]
        if not options and fallback:
            options = [
                ManagerOption.model_validate(emp).model_copy(update={"preferred": False})
                for emp in await _load(fallback, None)
            ]

        return ManagerOptionsResponse(
            target_role_rank=target_role_rank,
            allowed_ranks=sorted(preferred + fallback),
            items=options,
            total=len(options),
        )


# ═════════════════════════════════════════════════════════════════════
# RoleService
# ═════════════════════════════════════════════════════════════════════


class RoleService:
    """Role master: rank and WFH eligibility per role name."""

    @staticmethod
    async def list_roles(
        db: AsyncSession,
        *,
        include_inactive: bool = False,
    ) -> list[RoleDefinition]:
        query = select(RoleDefinition).order_by(RoleDefinition.role_rank, RoleDefinition.name)
        if not include_inactive:
            query = query.where(RoleDefinition.is_active.is_(True))
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def create_role(
        db: AsyncSession,
        data: RoleDefinitionCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> RoleDefinition:
        existing = await db.execute(
            select(RoleDefinition.id).where(RoleDefinition.name == data.name)
        )
        if existing.scalar() is not None:
            raise ConflictError("name", data.name)

        role = RoleDefinition(**data.model_dump())
        db.add(role)
        await db.flush()
        await db.refresh(role)

        await create_audit_entry(
            db,
            action="create",
            entity_type="role_definition",
            entity_id=role.id,
            actor_id=actor_id,
            new_values=data.model_dump(),
        )
        return role

    @staticmethod
    async def is_wfh_enabled(db: AsyncSession, employee: Employee) -> bool:
        """WFH eligibility comes from the role master entry for the employee's role."""
        result = await db.execute(
            select(RoleDefinition.wfh_enabled).where(
                RoleDefinition.name == employee.role.value,
                RoleDefinition.is_active.is_(True),
            )
        )
        return bool(result.scalar())


# ═════════════════════════════════════════════════════════════════════
# DepartmentService
# ═════════════════════════════════════════════════════════════════════


class DepartmentService:

    @staticmethod
    async def list_departments(db: AsyncSession) -> list[Department]:
        result = await db.execute(
            select(Department).where(Department.is_active.is_(True)).order_by(Department.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_department(
        db: AsyncSession,
        data: DepartmentCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Department:
        existing = await db.execute(
            select(Department.id).where(Department.name == data.name)
        )
        if existing.scalar() is not None:
            raise ConflictError("name", data.name)

        dept = Department(**data.model_dump())
        db.add(dept)
        await db.flush()
        await db.refresh(dept)
        await create_audit_entry(
            db,
            action="create",
            entity_type="department",
            entity_id=dept.id,
            actor_id=actor_id,
            new_values=data.model_dump(),
        )
        return dept
