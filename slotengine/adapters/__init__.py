"""
Adapters layer - Schedule storage (in-memory/JSON file and PostgREST).
"""

from .memory_repository import InMemoryScheduleRepository
from .postgrest_repository import PostgrestScheduleRepository

__all__ = ["InMemoryScheduleRepository", "PostgrestScheduleRepository"]
