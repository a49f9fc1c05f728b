"""Payroll computation engine.

Attendance resolution, statutory deductions, payroll assembly with
idempotent persistence, and 13th-month aggregation.
"""

__version__ = "1.0.0"
