"""
Proxy Endpoint

Catch-all route forwarding inbound requests to the backend service whose
route prefix matches the request path. The path is forwarded unchanged.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, status

from cab_gateway.routing.models import ForwardRequest

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


@router.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy(full_path: str, request: Request) -> Response:
    """Forward a request to its backend service."""
    path = request.url.path
    service_name = request.app.state.registry.resolve_prefix(path)
    if service_name is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No service routes {path}",
        )

    forward = ForwardRequest(
        method=request.method,
        path=path,
        query=request.url.query,
        headers=request.headers.items(),
        body=await request.body(),
        client_ip=request.client.host if request.client else None,
        request_id=getattr(request.state, "request_id", None),
    )

    upstream = await request.app.state.router.route(service_name, forward)

    response = Response(content=upstream.content, status_code=upstream.status_code)
    # append keeps repeated upstream headers such as Set-Cookie
    for name, value in upstream.headers:
        response.headers.append(name, value)
    response.headers["X-Gateway-Processed"] = "true"
    response.headers["X-Service-Name"] = service_name
    return response
