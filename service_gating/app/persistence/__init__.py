"""
Durable storage backends.
"""

from .postgres import PostgreSQLRequestStore
