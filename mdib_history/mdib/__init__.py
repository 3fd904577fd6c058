"""
In-memory MDIB model and state application.

- StateCursor: Mutable MDIB of one sequence id
- StateApplicationEngine: Merges reports into a cursor
- default_engine: Engine with handlers for all episodic report kinds
"""

from .cursor import StateCursor
from .engine import StateApplicationEngine, default_engine
from .handlers import register_handlers

__all__ = [
    "StateCursor",
    "StateApplicationEngine",
    "default_engine",
    "register_handlers",
]
