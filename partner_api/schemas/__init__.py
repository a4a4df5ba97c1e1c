"""
Pydantic request/response schemas and request-scoped value types.
"""

from partner_api.schemas.employee import EmployeeContext

__all__ = ["EmployeeContext"]
