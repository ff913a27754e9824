from typing import Any, Callable, Iterable

from fastapi import APIRouter

# (method, path, endpoint, add_api_route keyword options)
Route = tuple[str, str, Callable[..., Any], dict]


def build_router(prefix: str, tag: str, routes: Iterable[Route]) -> APIRouter:
    """
    Register *routes* on a new router in table order.  Order matters:
    a literal path such as ``/feed`` must precede ``/{slug}``.
    """
    router = APIRouter(prefix=prefix, tags=[tag])
    for method, path, endpoint, options in routes:
        router.add_api_route(path, endpoint, methods=[method], **options)
    return router
