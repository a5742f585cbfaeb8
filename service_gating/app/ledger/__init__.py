"""
Usage ledgers with atomic check-and-increment.
"""

from .base import UsageLedger, ConsumeResult
from .memory import InMemoryUsageLedger
from .redis_ledger import RedisUsageLedger

__all__ = ["UsageLedger", "ConsumeResult", "InMemoryUsageLedger", "RedisUsageLedger"]
