"""Access to the application context from request handlers."""

from typing import Annotated

from fastapi import Depends, Request

from hausdog.context import AppContext


def get_app_context(request: Request) -> AppContext:
    context: AppContext = request.app.state.context
    return context


Context = Annotated[AppContext, Depends(get_app_context)]
