"""Game domain services: lifecycle, state machine, scoring and timers.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics.
"""

from .service import GameService  # noqa: F401
