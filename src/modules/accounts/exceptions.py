"""Account and cart domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class UserNotFound(Exception):
    """The referenced user does not exist."""


class InactiveUser(Exception):
    """The user account is disabled and cannot place orders."""
