from .memory import InMemoryBackend
from .postgres import PostgresVersionedBackend

__all__ = ["InMemoryBackend", "PostgresVersionedBackend"]
