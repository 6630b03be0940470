"""Protected Resource Metadata — RFC 9728 discovery document.

Invariants:
    - GET /.well-known/oauth-protected-resource is public and static per process
    - `resource` is PUBLIC_URL; auth challenges point here (Settings.discovery_url)
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["auth"])


@router.get("/.well-known/oauth-protected-resource")
async def protected_resource_metadata(request: Request):
    settings = request.app.state.settings
    metadata = {
        "resource": settings.public_url,
        "authorization_servers": list(settings.authorization_servers),
        "scopes_supported": list(settings.scopes_supported),
        "bearer_methods_supported": ["header"],
    }
    if settings.resource_documentation:
        metadata["resource_documentation"] = settings.resource_documentation
    return metadata
