# =============================================================================
# core/pipeline/router_table.py - Route Lookup
# =============================================================================
# Maps (method, path) to the route that answers it. Backed by the
# application's Starlette router so routes declared with APIRouter
# decorators and routes registered here share one table.
# =============================================================================

from typing import Callable

from starlette.routing import BaseRoute, Match, Router


class RouterTable:
    """
    Read-mostly route table consulted by the dispatch stage.

    Routes are registered at startup and only read afterwards. Lookup is a
    linear scan in registration order; the first full match wins. Patterns
    are matched by Starlette, so literal paths work today and path
    parameters can be added without changing this interface.
    """

    def __init__(self, router: Router):
        self._router = router

    def register(self, method: str, path: str, handler: Callable, name: str | None = None) -> None:
        """
        Register a handler for one method and path pattern.

        Args:
            method: HTTP method, e.g. "GET"
            path: Path pattern, e.g. "/api/health"
            handler: Starlette endpoint (request -> response)
            name: Optional route name
        """
        self._router.add_route(path, handler, methods=[method.upper()], name=name)

    def match(self, method: str, path: str) -> BaseRoute | None:
        """
        Find the route answering `method` + `path`.

        A path that exists only for other methods does not match.

        Returns:
            The first fully matching route, or None
        """
        scope = {
            "type": "http",
            "method": method.upper(),
            "path": path,
            "root_path": "",
        }
        for route in self._router.routes:
            matched, _ = route.matches(scope)
            if matched == Match.FULL:
                return route
        return None
