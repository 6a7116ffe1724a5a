"""
Inbox SLA Engine
================

SLA resolution and deadline monitoring for omnichannel inbox conversations.

Bounded contexts:
- sla: policy hierarchy resolution, business-hours deadlines,
  warning/expired detection and dashboard aggregation
"""

__version__ = "1.0.0"
