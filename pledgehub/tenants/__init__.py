"""
Tenants app: multi-tenant core of the platform.

One organization = one Tenant on a shared database and schema.
Resolution: acme.pledgehub.test -> Tenant(slug='acme'), or a custom domain,
or the /t/<slug>/ path prefix.

Data model:
    Tenant <- N TenantMembership (user + tenant role)
    Tenant <- N OnboardingProgress
    Tenant <- FK from Project, Product, Contribution, ... (TenantModelMixin)
"""
