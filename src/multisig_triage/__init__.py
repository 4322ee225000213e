"""
Multisig Ticket Triage
======================

Urgency triage, indexed storage and periodic re-triage for multisig
transaction approval tickets.
"""

__version__ = "1.0.0"
