"""Core HR module — Employee, Department and RoleDefinition models, schemas and services."""

from hrms.core_hr.models import Department, Employee, RoleDefinition

__all__ = ["Employee", "Department", "RoleDefinition"]
