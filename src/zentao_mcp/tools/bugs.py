from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from zentao_mcp.client import ZenTaoClient
from zentao_mcp.errors import InvalidVerifyResultError, ZenTaoHTTPError
from zentao_mcp.extract import extract_detail, extract_list
from zentao_mcp.models import (
    DEFAULT_PAGE_SIZE,
    BugActionInput,
    BugListQuery,
    BugRef,
    CommentInput,
    ResolveInput,
    VerifyInput,
    validate_input,
)
from zentao_mcp.observability import log_event
from zentao_mcp.urls import pluralize_path, resolve_path_template
from zentao_mcp.utils.images import extract_images

log = logging.getLogger("zentao_mcp.tools.bugs")

BUGS_PATH = "/bugs"
PRODUCT_BUGS_PATH = "/products/{id}/bugs"
BUG_DETAIL_PATH = "/bugs/{id}"
RESOLVE_PATH = "/bugs/{id}/resolve"
CLOSE_PATH = "/bugs/{id}/close"
ACTIVATE_PATH = "/bugs/{id}/activate"
COMMENT_PATH = "/bugs/{id}/comment"

BUG_TEXT_FIELDS = ("title", "steps", "keywords")
SOLUTION_LABEL = "Solution: "
VERIFY_ACTIONS = {"pass": "close", "fail": "activate"}


def _field_text(value: Any) -> str:
    # assignedTo/status come back either as plain strings or as user/option objects
    if isinstance(value, dict):
        for key in ("account", "code", "name", "realname"):
            if value.get(key):
                return str(value[key])
        return ""
    if value is None:
        return ""
    return str(value)


def _norm(value: Any) -> str:
    return _field_text(value).strip().casefold()


def _bug_matches(
    bug: Any,
    *,
    status: Optional[str],
    assignee: Optional[str],
    needle: Optional[str],
) -> bool:
    if not isinstance(bug, dict):
        return False
    if status and _norm(bug.get("status")) != status.casefold():
        return False
    if assignee and _norm(bug.get("assignedTo")) != assignee.casefold():
        return False
    if needle:
        haystack = [_norm(bug.get(field)) for field in BUG_TEXT_FIELDS]
        if not any(needle.casefold() in text for text in haystack):
            return False
    return True


async def list_my_bugs(
    client: ZenTaoClient,
    assignee: Optional[str] = None,
    status: Optional[str] = None,
    keyword: Optional[str] = None,
    product_id: Optional[int] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    path: Optional[str] = None,
) -> Dict[str, Any]:
    """
    List bugs assigned to me (or to `assignee`), filtered by status and keyword.

    Filters are sent to ZenTao and then applied again locally, because the
    server-side filtering of /bugs is not exact. If ZenTao answers that a
    product is required, the call is retried once against
    /products/{ZENTAO_PRODUCT_ID}/bugs.

    Returns:
        {
            "total": int,            # records returned by ZenTao
            "matched": int,          # records left after local filtering
            "page": int,
            "limit": int,
            "path": str,
            "scope_fallback": bool,
            "bugs": [...],
        }
    """
    query = validate_input(
        BugListQuery,
        assignee=assignee,
        status=status,
        keyword=keyword,
        product_id=product_id,
        page=page,
        limit=limit,
        path=path,
    )
    who = query.assignee if query.assignee is not None else client.account

    explicit_scope = query.path is not None or query.product_id is not None
    if query.path is not None:
        list_path = query.path
    elif query.product_id is not None:
        list_path = resolve_path_template(PRODUCT_BUGS_PATH, query.product_id)
    else:
        list_path = BUGS_PATH

    params: Dict[str, Any] = {
        "assignedTo": who or None,
        "status": query.status,
        "product": None if explicit_scope else client.default_product_id,
        "page": query.page,
        "limit": query.limit,
    }

    scope_fallback = False
    try:
        resp = await client.get(list_path, query=params, tool="list_my_bugs")
    except ZenTaoHTTPError as exc:
        fallback_product = client.default_product_id
        if explicit_scope or fallback_product is None or not client.scope_required(exc):
            raise
        list_path = resolve_path_template(PRODUCT_BUGS_PATH, fallback_product)
        log_event(
            "scope_fallback",
            logger=log,
            tool="list_my_bugs",
            endpoint=list_path,
            status=exc.status_code,
        )
        resp = await client.get(
            list_path, query={**params, "product": None}, tool="list_my_bugs"
        )
        scope_fallback = True

    bugs: List[Any] = extract_list(resp.data, "bugs")
    matched = [
        b
        for b in bugs
        if _bug_matches(b, status=query.status, assignee=who, needle=query.keyword)
    ]

    return {
        "total": len(bugs),
        "matched": len(matched),
        "page": query.page,
        "limit": query.limit,
        "path": list_path,
        "scope_fallback": scope_fallback,
        "bugs": matched,
    }


async def get_bug_detail(
    client: ZenTaoClient, bug_id: int, path_template: Optional[str] = None
) -> Dict[str, Any]:
    """Fetch one bug plus the image links embedded in its steps/description."""
    ref = validate_input(BugRef, bug_id=bug_id)
    path = resolve_path_template(path_template or BUG_DETAIL_PATH, ref.bug_id)

    resp = await client.get(path, tool="get_bug_detail")
    bug = extract_detail(resp.data, "bug")

    return {
        "id": ref.bug_id,
        "found": bug is not None,
        "bug": bug,
        "images": extract_images(bug),
    }


async def _post_action(
    client: ZenTaoClient,
    *,
    bug_id: int,
    action: str,
    template: str,
    body: Dict[str, Any],
    tool: str,
) -> Dict[str, Any]:
    path = resolve_path_template(template, bug_id, action)
    resp = await client.post(path, body=body, tool=tool)
    return {
        "id": bug_id,
        "action": action,
        "path": path,
        "status": resp.status,
        "data": resp.data,
    }


def _resolve_comment(data: ResolveInput) -> str:
    if data.solution:
        return f"{SOLUTION_LABEL}{data.solution}"
    if data.comment:
        return data.comment
    return f"Resolved as {data.resolution} by zentao-mcp."


async def resolve_bug(
    client: ZenTaoClient,
    bug_id: int,
    resolution: str = "fixed",
    resolved_build: str = "trunk",
    solution: Optional[str] = None,
    comment: Optional[str] = None,
    path_template: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Resolve a bug. The comment sent to ZenTao is the solution (if given),
    otherwise the comment, otherwise a generated note naming the resolution.
    """
    data = validate_input(
        ResolveInput,
        bug_id=bug_id,
        resolution=resolution,
        resolved_build=resolved_build,
        solution=solution,
        comment=comment,
        path_template=path_template,
    )
    body = {
        "resolution": data.resolution,
        "resolvedBuild": data.resolved_build,
        "comment": _resolve_comment(data),
    }
    return await _post_action(
        client,
        bug_id=data.bug_id,
        action="resolve",
        template=data.path_template or RESOLVE_PATH,
        body=body,
        tool="resolve_bug",
    )


async def close_bug(
    client: ZenTaoClient,
    bug_id: int,
    comment: Optional[str] = None,
    path_template: Optional[str] = None,
) -> Dict[str, Any]:
    """Close a bug, optionally leaving a comment."""
    data = validate_input(
        BugActionInput, bug_id=bug_id, comment=comment, path_template=path_template
    )
    return await _post_action(
        client,
        bug_id=data.bug_id,
        action="close",
        template=data.path_template or CLOSE_PATH,
        body={"comment": data.comment} if data.comment else {},
        tool="close_bug",
    )


async def activate_bug(
    client: ZenTaoClient,
    bug_id: int,
    comment: Optional[str] = None,
    path_template: Optional[str] = None,
) -> Dict[str, Any]:
    """Re-activate (reopen) a bug, optionally leaving a comment."""
    data = validate_input(
        BugActionInput, bug_id=bug_id, comment=comment, path_template=path_template
    )
    return await _post_action(
        client,
        bug_id=data.bug_id,
        action="activate",
        template=data.path_template or ACTIVATE_PATH,
        body={"comment": data.comment} if data.comment else {},
        tool="activate_bug",
    )


async def verify_bug(
    client: ZenTaoClient,
    bug_id: int,
    result: str,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Record a verification outcome: result="pass" closes the bug,
    result="fail" re-activates it.
    """
    data = validate_input(VerifyInput, bug_id=bug_id, result=result, comment=comment)
    outcome = data.result.strip().casefold()
    action = VERIFY_ACTIONS.get(outcome)
    if action is None:
        raise InvalidVerifyResultError(
            f"result must be 'pass' or 'fail', got {data.result!r}"
        )

    if action == "close":
        resp = await close_bug(client, data.bug_id, comment=data.comment)
    else:
        resp = await activate_bug(client, data.bug_id, comment=data.comment)
    return {**resp, "result": outcome}


async def comment_bug(
    client: ZenTaoClient,
    bug_id: int,
    comment: str,
    path_template: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Add a comment to a bug. Some ZenTao builds only route /comments, so a 404
    on /comment is retried once against the plural path.
    """
    data = validate_input(
        CommentInput, bug_id=bug_id, comment=comment, path_template=path_template
    )
    path = resolve_path_template(data.path_template or COMMENT_PATH, data.bug_id, "comment")
    body = {"comment": data.comment}

    try:
        resp = await client.post(path, body=body, tool="comment_bug")
    except ZenTaoHTTPError as exc:
        fallback = pluralize_path(path)
        if exc.status_code != 404 or fallback is None:
            raise
        log_event(
            "comment_fallback",
            logger=log,
            tool="comment_bug",
            endpoint=fallback,
            bug_id=data.bug_id,
        )
        path = fallback
        resp = await client.post(path, body=body, tool="comment_bug")

    return {
        "id": data.bug_id,
        "action": "comment",
        "path": path,
        "status": resp.status,
        "data": resp.data,
    }
