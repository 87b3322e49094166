from dataclasses import dataclass, field

from fastapi import Depends, Header, HTTPException, status

from jobengine.config.settings import AuthMode, settings


@dataclass
class TenantContext:
    """The tenant (and optionally user) an operation is scoped to."""

    tenant_id: str
    user_id: str | None = None
    roles: list[str] = field(default_factory=list)


async def get_tenant_context(
    x_tenant_id: str | None = Header(None, alias="X-Tenant-ID"),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> TenantContext:
    """
    Dependency injection function to get the current tenant context.

    Behavior based on AUTH_MODE:
    - none: Returns dev defaults with admin role
    - dev: Extract tenant and user from headers
    - oidc: Provided by the platform auth middleware, not by this service
    """
    if settings.auth_mode == AuthMode.NONE:
        return TenantContext(
            tenant_id=settings.dev_tenant_id,
            user_id=settings.dev_user_id,
            roles=["admin"],
        )
    elif settings.auth_mode == AuthMode.DEV:
        if not x_tenant_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="X-Tenant-ID header is required in dev auth mode",
            )

        return TenantContext(
            tenant_id=x_tenant_id,
            user_id=x_user_id,
            roles=["admin"],
        )
    elif settings.auth_mode == AuthMode.OIDC:
        raise NotImplementedError(
            "OIDC tenant resolution is handled by the platform auth middleware"
        )
    else:
        raise ValueError(f"Unknown auth mode: {settings.auth_mode}")


# Convenience type alias for dependency injection
TenantDep = Depends(get_tenant_context)
