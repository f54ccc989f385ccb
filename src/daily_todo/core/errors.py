# src/daily_todo/core/errors.py

"""
Error taxonomy shared by the core.

- ValidationError: the request is rejected before it reaches the store.
- StoreError: the store rejected a call or the connection failed.
- SubscriptionLost: a change feed subscription was dropped; re-subscribe and resync.
- SessionClosed: the session was torn down before the request ran.

Unknown ids on remote update/delete are not errors: the reconciler self-heals them.
"""

from __future__ import annotations


class TodoError(Exception):
    """Base class for all daily_todo errors."""


class ValidationError(TodoError):
    pass


class StoreError(TodoError):
    pass


class SubscriptionLost(StoreError):
    pass


class SessionClosed(TodoError):
    pass
