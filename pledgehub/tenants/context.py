"""
Current tenant holder.

The middleware sets it for every request; services, signals and Celery tasks
read it where no request is available. Backed by contextvars, so it is safe
in sync views, async views and worker threads alike.
"""
import contextvars

_current_tenant: contextvars.ContextVar = contextvars.ContextVar(
    'current_tenant', default=None
)


def set_current_tenant(tenant):
    """Set the current tenant."""
    _current_tenant.set(tenant)


def get_current_tenant():
    """Current tenant, or None when not set."""
    return _current_tenant.get()


def clear_current_tenant():
    _current_tenant.set(None)


class tenant_context:
    """
    Run a block with ``tenant`` as the current tenant.

        with tenant_context(tenant):
            ProjectService.update_statuses_by_date()
    """

    def __init__(self, tenant):
        self.tenant = tenant
        self._token = None

    def __enter__(self):
        self._token = _current_tenant.set(self.tenant)
        return self.tenant

    def __exit__(self, exc_type, exc, tb):
        _current_tenant.reset(self._token)
        return False
