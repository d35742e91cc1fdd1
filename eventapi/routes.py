"""The application's route table."""

from __future__ import annotations

from eventapi.handlers import events_get, events_post, ping, stats, user_events
from eventapi.middlewares import error_middleware, response_middleware
from eventapi.router import RouterManager


def registration_routes(router: RouterManager) -> None:
    """Install the middleware chain and every endpoint."""
    router.use(error_middleware, response_middleware)

    router.get("/ping", ping)
    router.post("/events", events_post)
    router.get("/events", events_get)
    router.get("/users/{userId}/events", user_events)
    router.get("/stats", stats)