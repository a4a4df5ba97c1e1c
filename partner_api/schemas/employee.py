# partner_api/schemas/employee.py
from __future__ import annotations

from dataclasses import dataclass

from partner_api.models.enums import EmployeeRole


@dataclass(frozen=True)
class EmployeeContext:
    """Authenticated partner employee, as carried by the bearer token."""

    employee_id: int
    company_id: int
    role: EmployeeRole
