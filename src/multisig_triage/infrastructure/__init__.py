"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Ordered key-value storage
- Language model clients
"""
