"""
Triage Module
=============

Bounded Context for multisig ticket triage.

Responsibilities:
- Score ticket urgency from weighted factors plus an optional LLM adjustment
- Persist tickets with secondary indexes over an ordered key-value store
- Periodically re-triage pending tickets
"""

__version__ = "1.0.0"
