"""
Roadmap Engine Store

Repository backends. Both expose `users`, `tickets` and `proposals`
with the same async interface.
"""

from .memory import InMemoryStore, InMemoryUserRepo, InMemoryTicketRepo, InMemoryProposalRepo


def build_store(database_url: str = ""):
    """Empty URL selects the in-memory store."""
    if not database_url:
        return InMemoryStore()
    from .sql import SqlStore
    return SqlStore(database_url)


__all__ = [
    "InMemoryStore", "InMemoryUserRepo", "InMemoryTicketRepo", "InMemoryProposalRepo",
    "build_store",
]
