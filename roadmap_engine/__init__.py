"""
Roadmap Engine

Ticket status workflow for a multi-tenant product roadmap:
- Account (tenant) isolation on every read and write
- Direct moves for PMs/admins, proposals for everyone else
- One pending proposal per ticket, resolved exactly once
- Optimistic board view that never outlives a failed request
"""

__version__ = "0.1.0"
