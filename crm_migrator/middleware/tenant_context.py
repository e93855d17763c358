# crm_migrator/middleware/tenant_context.py

from flask import current_app, g, request

from crm_migrator.models import Organization

TENANT_HEADER = "X-Organization-Slug"


def get_current_organization():
    """Organization resolved for the current request, or None"""
    return getattr(g, "current_organization", None)


def init_tenant_context_middleware(app):
    """Initialize tenant context middleware"""

    @app.before_request
    def set_tenant_context():
        """Set the current organization from the tenant header or org_slug argument"""
        g.current_organization = None

        if request.endpoint == "static":
            return

        org_slug = request.headers.get(TENANT_HEADER) or request.args.get("org_slug")
        org_id = request.args.get("org_id")

        organization = None
        if org_slug:
            organization = Organization.find_by_slug(org_slug.strip())
        elif org_id:
            try:
                organization = Organization.find_by_id(int(org_id))
            except (ValueError, TypeError):
                current_app.logger.warning(f"Invalid organization ID: {org_id}")

        if organization and not organization.is_active:
            current_app.logger.warning(f"Attempted access to inactive organization: {organization.id}")
            organization = None

        g.current_organization = organization
