"""
Shared Kernel Module
====================

Shared infrastructure used by the SLA bounded context and the host
application: structured logging and HTTP middleware.

DO NOT add SLA business logic to the shared kernel.
"""
