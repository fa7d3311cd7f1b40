from .interface import DatabaseInterface, SupabaseInterface, SQLAlchemyInterface
from .connection import DatabaseConfig, DatabaseConnection

__all__ = [
    'DatabaseInterface',
    'SupabaseInterface',
    'SQLAlchemyInterface',
    'DatabaseConfig',
    'DatabaseConnection'
]
