"""
payroll_services -- Package init and public API.

Responsibility:
    The outer facade over payroll_kernel.  This is the only package that
    reads PayrollConfig and wires kernel services together.

Architecture position:
    Services -- depends on payroll_kernel and payroll_config.

    Dependency direction:
        payroll_services/ -> payroll_kernel/  (allowed)
        payroll_services/ -> payroll_config/  (allowed)
        payroll_kernel/   -> payroll_services/ (FORBIDDEN)
"""

from payroll_services.settlement_service import SettlementService

__all__ = [
    "SettlementService",
]
