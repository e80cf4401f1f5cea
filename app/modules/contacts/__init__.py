"""
Clients billed by an owner. Invoices require a client; expenses may reference one.
"""

from .models import Client

__all__ = ["Client"]
