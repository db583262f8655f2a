"""
Jobs package - background housekeeping
"""
from .scheduler import JobScheduler

__all__ = ['JobScheduler']
