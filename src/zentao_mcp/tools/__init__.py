"""
Tool namespace for ZenTao MCP.

Every public coroutine taking `client` as its first parameter in a module of
this package is registered as an MCP tool by zentao_mcp.registry.
"""

from .batch import batch_resolve_my_bugs
from .bugs import (
    activate_bug,
    close_bug,
    comment_bug,
    get_bug_detail,
    list_my_bugs,
    resolve_bug,
    verify_bug,
)
from .projects import list_my_projects
from .system import call, get_token

__all__ = [
    "get_token",
    "call",
    "list_my_projects",
    "list_my_bugs",
    "get_bug_detail",
    "resolve_bug",
    "close_bug",
    "activate_bug",
    "verify_bug",
    "comment_bug",
    "batch_resolve_my_bugs",
]
