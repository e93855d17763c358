# crm_migrator/middleware/__init__.py
"""
Request middleware
"""

from .tenant_context import get_current_organization, init_tenant_context_middleware

__all__ = ["get_current_organization", "init_tenant_context_middleware"]
