"""
Pure domain layer -- no I/O, no ORM, no sessions.

Submodules are imported directly (payroll_kernel.domain.dtos and so on);
models/ depend on domain.values, so this package must stay import-light.
"""
