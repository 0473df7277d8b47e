"""
Worksheet Kernel

The lifecycle core for dental medical-device worksheets:
- Static, role-gated state machine with declared entry effects
- FIFO consumption of lot-tracked materials
- Race-safe sequential identifiers backed by counter rows
- Append-only, hash-chained audit trail
"""

__version__ = "0.1.0"
