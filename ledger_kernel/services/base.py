"""
BaseService -- common constructor for kernel write services.

Services receive a SQLAlchemy ``Session`` from the caller and persist through
``session.flush()`` only.  They never commit or roll back the caller's
transaction; savepoints they open themselves are theirs to release.  The
caller (``session_scope()``, the event consumer, the GeneralLedger facade or
a test) owns commit and rollback, so a posting and its outbox row always
share one transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """Abstract base class for all kernel services."""

    def __init__(self, session: Session):
        self.session = session
