"""
SLA Monitoring Module
=====================

Bounded Context for first-response SLA resolution and deadline monitoring.

Responsibilities:
- Resolve the effective SLA policy for a thread (local > channel > tenant)
- Compute response deadlines honouring per-policy business hours
- Detect threads approaching (warnings) or past (expired) their deadline
- Aggregate dashboard statistics and configuration coverage
- Notify assigned agents from a background monitor
- Hot-reload a YAML policy file via watchdog
"""

__version__ = "1.0.0"
