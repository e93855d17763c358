# crm_migrator/utils/__init__.py
"""
Shared application utilities
"""

from .logging_config import setup_logging

__all__ = ["setup_logging"]
