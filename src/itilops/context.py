"""
Tenant namespace context

Pipeline runs, repositories and metrics are scoped per tenant. The active
namespace is carried in a contextvar so concurrent scheduler tasks for
different tenants never see each other's scope.
"""

import contextvars
from typing import Optional

_namespace_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "itilops_namespace", default=None
)


def set_namespace(namespace: str) -> contextvars.Token:
    """
    Set the current namespace in context

    Returns:
        Token that can be used to reset the context
    """
    if not namespace:
        raise ValueError("Namespace cannot be empty")
    return _namespace_context.set(namespace)


def get_namespace(default: str = "default") -> str:
    """Get the current namespace, or ``default`` outside any NamespaceContext"""
    return _namespace_context.get() or default


def reset_namespace(token: contextvars.Token) -> None:
    _namespace_context.reset(token)


class NamespaceContext:
    """Context manager for namespace isolation"""

    def __init__(self, namespace: str):
        self.namespace = namespace
        self.token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self.token = set_namespace(self.namespace)
        return self.namespace

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            reset_namespace(self.token)
            self.token = None
