"""
FastAPI/Strawberry integration.

Mounts a built schema on a FastAPI application and creates one
``CallerContext`` per request. Authentication is not handled here: an auth
middleware is expected to set ``request.state.auth_context`` with ``scopes``
and ``user_id`` attributes. Requests without one run anonymously.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from strawberry.fastapi import GraphQLRouter

from graphgate.core.context import CallerContext
from graphgate.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from graphgate.config import GraphGateConfig
    from graphgate.graphql.schema_builder import EntitySchemaBuilder

logger = get_logger("http")

REQUEST_ID_HEADER = "X-Request-ID"


def create_context_from_request(request: Request) -> CallerContext:
    """
    Create a CallerContext from an HTTP request.

    Reads ``scopes``, ``user_id`` and ``session`` from
    ``request.state.auth_context`` when present, and propagates the
    ``X-Request-ID`` header (a new id is generated otherwise).
    """
    auth_context = getattr(request.state, "auth_context", None)
    request_id = request.headers.get(REQUEST_ID_HEADER)

    scopes: Iterable[str] = ()
    user_id: Any = None
    session: dict[str, Any] = {}

    if auth_context is not None:
        scopes = getattr(auth_context, "scopes", None) or ()
        user_id = getattr(auth_context, "user_id", None)
        session = dict(getattr(auth_context, "session", None) or {})

    if request.client:
        session.setdefault("ip_address", request.client.host)

    return CallerContext.create(
        scopes=scopes,
        user_id=user_id,
        request_id=request_id,
        session=session,
    )


def context_getter(builder: EntitySchemaBuilder):
    """
    Strawberry context getter for ``builder``.

    Resolvers find the caller under ``caller`` and, when the builder has a
    repository factory, the request's own repository under ``repository``.
    """

    async def get_context(request: Request) -> dict[str, Any]:
        return builder.create_context(create_context_from_request(request))

    return get_context


def mount_graphql(
    app: FastAPI,
    builder: EntitySchemaBuilder,
    path: str | None = None,
    enable_graphiql: bool | None = None,
) -> None:
    """
    Mount the builder's schema on an existing FastAPI application.

    Args:
        app: Existing FastAPI application
        builder: Schema builder; its schema is finalized here if not yet built
        path: URL path (default: ``builder.config.graphql_path``)
        enable_graphiql: Serve GraphiQL (default: ``builder.config.enable_graphiql``)

    Example:
        app = FastAPI()
        mount_graphql(app, EntitySchemaBuilder(repo, {"widgets": Widget}))
    """
    path = path or builder.config.graphql_path
    graphiql = builder.config.enable_graphiql if enable_graphiql is None else enable_graphiql

    graphql_router = GraphQLRouter(
        builder.schema,
        context_getter=context_getter(builder),
        graphql_ide="graphiql" if graphiql else None,
    )
    app.include_router(graphql_router, prefix=path)
    logger.info("GraphQL mounted at %s", path)


def create_graphql_app(
    builder: EntitySchemaBuilder,
    config: GraphGateConfig | None = None,
    title: str = "graphgate",
) -> FastAPI:
    """
    Create a standalone FastAPI application serving the builder's schema.

    Args:
        builder: Schema builder
        config: Overrides ``builder.config`` for path, GraphiQL and logging
            settings
        title: Application title
    """
    config = config or builder.config
    setup_logging(config.log_dir, config.log_level)
    app = FastAPI(title=f"{title} GraphQL API")
    mount_graphql(app, builder, path=config.graphql_path, enable_graphiql=config.enable_graphiql)
    return app
