"""Game domain services: round progression, scoring, ratings and timers.

This package contains the domain logic that HTTP routes and socket
handlers call into, keeping transport concerns separated from core game
mechanics. Importing it registers the round event handlers.
"""

from . import progression, scoring, match_ratings  # noqa: F401
