"""Core HR tests — employee creation, reporting hierarchy, role master, departments."""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.constants import UserRole
from hrms.common.exceptions import ConflictError, NotFoundException, ValidationException
from hrms.core_hr.schemas import DepartmentCreate, EmployeeCreate, RoleDefinitionCreate
from hrms.core_hr.service import DepartmentService, EmployeeService, RoleService
from tests.conftest import seed_department, seed_role


# ═════════════════════════════════════════════════════════════════════
# Employees
# ═════════════════════════════════════════════════════════════════════


class TestEmployeeCreate:

    async def test_create_with_valid_manager(self, db: AsyncSession, org):
        emp = await EmployeeService.create_employee(
            db,
            EmployeeCreate(
                emp_code="CF-0100",
                name="Nikhil New",
                role=UserRole.employee,
                role_rank=5,
                reporting_manager_id=org["manager"].id,
                department_id=org["dept"].id,
                join_date=date(2026, 4, 1),
            ),
        )
        assert emp.id is not None
        assert emp.role_rank == 5
        assert emp.created_at is not None

    async def test_rank_taken_from_role_master(self, db: AsyncSession, org):
        await seed_role(db, UserRole.manager.value, 4)
        emp = await EmployeeService.create_employee(
            db,
            EmployeeCreate(
                emp_code="CF-0101",
                name="Mira Manager",
                role=UserRole.manager,
                reporting_manager_id=org["md"].id,
            ),
        )
        assert emp.role_rank == 4

    async def test_missing_role_master_entry(self, db: AsyncSession, org):
        with pytest.raises(ValidationException):
            await EmployeeService.create_employee(
                db,
                EmployeeCreate(
                    emp_code="CF-0102", name="Vik VP", role=UserRole.vp,
                    reporting_manager_id=org["md"].id,
                ),
            )

    async def test_rank_one_without_manager(self, db: AsyncSession):
        emp = await EmployeeService.create_employee(
            db,
            EmployeeCreate(emp_code="CF-0001", name="Founder", role=UserRole.md, role_rank=1),
        )
        assert emp.reporting_manager_id is None

    async def test_rank_one_with_manager_rejected(self, db: AsyncSession, org):
        with pytest.raises(ValidationException):
            await EmployeeService.create_employee(
                db,
                EmployeeCreate(
                    emp_code="CF-0002", name="Second MD", role=UserRole.md, role_rank=1,
                    reporting_manager_id=org["md"].id,
                ),
            )

    async def test_manager_required_below_rank_one(self, db: AsyncSession):
        with pytest.raises(ValidationException):
            await EmployeeService.create_employee(
                db,
                EmployeeCreate(emp_code="CF-0103", name="Orphan", role_rank=5),
            )

    async def test_peer_cannot_manage(self, db: AsyncSession, org):
        with pytest.raises(ValidationException):
            await EmployeeService.create_employee(
                db,
                EmployeeCreate(
                    emp_code="CF-0104", name="Peer", role=UserRole.manager, role_rank=4,
                    reporting_manager_id=org["manager"].id,
                ),
            )

    async def test_unknown_manager(self, db: AsyncSession):
        with pytest.raises(ValidationException):
            await EmployeeService.create_employee(
                db,
                EmployeeCreate(emp_code="CF-0105", name="Lost", role_rank=5,
                               reporting_manager_id=uuid.uuid4()),
            )

    async def test_unknown_department(self, db: AsyncSession, org):
        with pytest.raises(NotFoundException):
            await EmployeeService.create_employee(
                db,
                EmployeeCreate(
                    emp_code="CF-0106", name="Nowhere", role_rank=5,
                    reporting_manager_id=org["manager"].id, department_id=uuid.uuid4(),
                ),
            )

    async def test_duplicate_emp_code(self, db: AsyncSession, org):
        data = EmployeeCreate(
            emp_code="CF-0107", name="Twin", role_rank=5, reporting_manager_id=org["manager"].id,
        )
        await EmployeeService.create_employee(db, data)
        with pytest.raises(ConflictError):
            await EmployeeService.create_employee(db, data)

    async def test_get_missing_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await EmployeeService.get_employee(db, uuid.uuid4())


class TestManagerOptions:

    async def test_rank_five_prefers_department_managers(self, db: AsyncSession, org):
        options = await EmployeeService.get_manager_options(
            db, 5, department_id=org["dept"].id,
        )
        assert options.allowed_ranks == [1, 2, 3, 4]
        assert [o.id for o in options.items] == [org["manager"].id]
        assert options.items[0].preferred is True

    async def test_rank_five_falls_back_company_wide(self, db: AsyncSession, org):
        empty_dept = await seed_department(db, "Finance", "FIN")
        options = await EmployeeService.get_manager_options(
            db, 5, department_id=empty_dept.id,
        )
        assert [o.id for o in options.items] == [org["md"].id, org["hr"].id]
        assert all(o.preferred is False for o in options.items)

    async def test_rank_three_candidates(self, db: AsyncSession, org):
        options = await EmployeeService.get_manager_options(db, 3)
        assert [o.id for o in options.items] == [org["md"].id]

    async def test_rank_one_has_none(self, db: AsyncSession, org):
        options = await EmployeeService.get_manager_options(db, 1)
        assert options.total == 0
        assert options.allowed_ranks == []


# ═════════════════════════════════════════════════════════════════════
# Role master & departments
# ═════════════════════════════════════════════════════════════════════


class TestRoleMaster:

    async def test_create_and_list(self, db: AsyncSession):
        await RoleService.create_role(
            db, RoleDefinitionCreate(name="VP", role_rank=2, wfh_enabled=True),
        )
        await RoleService.create_role(
            db, RoleDefinitionCreate(name="INTERN", role_rank=6, is_active=False),
        )

        active = await RoleService.list_roles(db)
        everything = await RoleService.list_roles(db, include_inactive=True)
        assert [r.name for r in active] == ["VP"]
        assert [r.name for r in everything] == ["VP", "INTERN"]

    async def test_duplicate_role(self, db: AsyncSession):
        await RoleService.create_role(db, RoleDefinitionCreate(name="VP", role_rank=2))
        with pytest.raises(ConflictError):
            await RoleService.create_role(db, RoleDefinitionCreate(name="VP", role_rank=2))


class TestDepartments:

    async def test_create_and_list(self, db: AsyncSession):
        await DepartmentService.create_department(db, DepartmentCreate(name="Sales", code="SAL"))
        await DepartmentService.create_department(db, DepartmentCreate(name="Ops"))
        names = [d.name for d in await DepartmentService.list_departments(db)]
        assert names == ["Ops", "Sales"]

    async def test_duplicate_department(self, db: AsyncSession):
        await DepartmentService.create_department(db, DepartmentCreate(name="Sales"))
        with pytest.raises(ConflictError):
            await DepartmentService.create_department(db, DepartmentCreate(name="Sales"))
