"""
Shared Kernel Module
====================

Generic infrastructure shared by every bounded context: structured
logging and HTTP middleware.

DO NOT add triage business logic to the shared kernel.
"""
