"""
Pricing Kernel

Typed errors, structured logging and the pure proposal data model:
- Decimal-only money with explicit rounding
- Billing configurations as a tagged union per billing method
- Line items, milestones, payment terms and proposal header
"""

__version__ = "0.1.0"
