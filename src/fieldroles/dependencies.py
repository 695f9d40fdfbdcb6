"""
FastAPI dependencies for field-level authorization.

Authentication is the application's business: hand in the dependency
that returns the current subject (None for anonymous requests).

Usage:
    from fieldroles.dependencies import authorization_dependency

    Authorize = authorization_dependency(get_current_user_optional)

    @router.get("/posts/{id}")
    async def show(id: int, auth: Authorize):
        post = await load_post(id)
        auth.authorize(post)                 # operation "show" from the endpoint name
        return {k: getattr(post, k) for k in auth.permitted_attributes("show")}
"""

from typing import Annotated, Any, Callable

from fastapi import Depends, HTTPException, Request, status

from .exceptions import NotAuthorizedError
from .service import AuthorizationService

# Endpoint name prefixes that mean a default operation
OPERATION_ALIASES = {
    "index": "index",
    "list": "index",
    "show": "show",
    "get": "show",
    "read": "show",
    "retrieve": "show",
    "create": "create",
    "new": "create",
    "update": "update",
    "edit": "update",
    "destroy": "destroy",
    "delete": "destroy",
    "remove": "destroy",
}

METHOD_OPERATIONS = {
    "GET": "show",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "destroy",
}


def default_operation(request: Request) -> str:
    """
    Operation name for a request.

    Taken from the endpoint function name ("update_post" -> "update",
    "publish" -> "publish"), falling back to the HTTP method.
    """
    endpoint = request.scope.get("endpoint")
    name = getattr(endpoint, "__name__", None)

    if name:
        prefix = name.split("_", 1)[0]
        return OPERATION_ALIASES.get(prefix, name)

    return METHOD_OPERATIONS.get(request.method, "show")


class RequestAuthorization:
    """
    AuthorizationService bound to one request.

    Denials become HTTP 403. Selector helpers are forwarded to the
    underlying service.
    """

    def __init__(self, service: AuthorizationService, operation: str):
        self.service = service
        self.operation = operation

    def authorize(self, resource: Any, operation: str | None = None, **kwargs: Any) -> Any:
        operation = operation or self.operation
        try:
            return self.service.authorize(resource, operation, **kwargs)
        except NotAuthorizedError as e:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=str(e) or "Permission denied",
            )

    def authorize_scope(self, resource: Any, operation: str | None = None, **kwargs: Any) -> Any:
        operation = operation or self.operation
        try:
            return self.service.authorize_scope(resource, operation, **kwargs)
        except NotAuthorizedError as e:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=str(e) or "Permission denied",
            )

    def __getattr__(self, name: str) -> Any:
        return getattr(self.service, name)


def authorization_dependency(get_subject: Callable[..., Any]) -> Any:
    """
    Build an Annotated dependency alias for route signatures.

    Args:
        get_subject: FastAPI dependency returning the current subject or None
    """
    async def get_request_authorization(
        request: Request,
        subject: Any = Depends(get_subject),
    ) -> RequestAuthorization:
        return RequestAuthorization(AuthorizationService(subject), default_operation(request))

    return Annotated[RequestAuthorization, Depends(get_request_authorization)]
