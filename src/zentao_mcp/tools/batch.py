from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from zentao_mcp.client import ZenTaoClient
from zentao_mcp.errors import MissingIdentifierError, ZenTaoClientError
from zentao_mcp.extract import extract_record_id
from zentao_mcp.models import (
    DEFAULT_BATCH_SIZE,
    MAX_PAGE_SIZE,
    BatchOptions,
    ResolveInput,
    validate_input,
)
from zentao_mcp.observability import log_event
from zentao_mcp.tools.bugs import list_my_bugs, resolve_bug

log = logging.getLogger("zentao_mcp.tools.batch")


def _describe(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"


async def batch_resolve_my_bugs(
    client: ZenTaoClient,
    assignee: Optional[str] = None,
    status: Optional[str] = "active",
    keyword: Optional[str] = None,
    product_id: Optional[int] = None,
    resolution: str = "fixed",
    resolved_build: str = "trunk",
    solution: Optional[str] = None,
    comment: Optional[str] = None,
    max_items: int = DEFAULT_BATCH_SIZE,
    stop_on_error: bool = False,
) -> Dict[str, Any]:
    """
    List my bugs once, then resolve up to `max_items` of them one at a time.

    Failures are recorded per bug instead of aborting the run, unless
    stop_on_error is set, in which case the first failure ends the loop.

    The listing is a single page of at most 200 bugs, so max_items above 200
    is accepted but never processes more than that page holds. Run the batch
    again to work through a longer backlog.

    Returns:
        {
            "requested": int,   # bugs matched by the listing
            "attempted": int,   # bugs processed (<= max_items)
            "resolved": int,
            "failed": int,
            "stopped": bool,
            "success": [{"id": int, "status": int}, ...],
            "errors": [{"id": int | None, "error": str}, ...],
        }
    """
    options = validate_input(
        BatchOptions, max_items=max_items, stop_on_error=stop_on_error
    )
    # Reject bad resolve arguments before touching the network
    validate_input(
        ResolveInput,
        bug_id=1,
        resolution=resolution,
        resolved_build=resolved_build,
        solution=solution,
        comment=comment,
    )

    listing = await list_my_bugs(
        client,
        assignee=assignee,
        status=status,
        keyword=keyword,
        product_id=product_id,
        limit=MAX_PAGE_SIZE,
    )
    candidates: List[Any] = listing["bugs"]
    selected = candidates[: options.max_items]

    success: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    attempted = 0
    stopped = False

    for bug in selected:
        attempted += 1
        bug_id = extract_record_id(bug)

        if bug_id is None:
            errors.append(
                {
                    "id": None,
                    "error": _describe(
                        MissingIdentifierError("bug record has no usable id field")
                    ),
                }
            )
            log_event(
                "batch_item", logger=log, tool="batch_resolve_my_bugs", status="missing_id"
            )
            if options.stop_on_error:
                stopped = True
                break
            continue

        try:
            resp = await resolve_bug(
                client,
                bug_id,
                resolution=resolution,
                resolved_build=resolved_build,
                solution=solution,
                comment=comment,
            )
        except ZenTaoClientError as exc:
            errors.append({"id": bug_id, "error": _describe(exc)})
            log_event(
                "batch_item",
                logger=log,
                tool="batch_resolve_my_bugs",
                bug_id=bug_id,
                status="failed",
                error_type=type(exc).__name__,
            )
            if options.stop_on_error:
                stopped = True
                break
            continue

        success.append({"id": bug_id, "status": resp["status"]})
        log_event(
            "batch_item",
            logger=log,
            tool="batch_resolve_my_bugs",
            bug_id=bug_id,
            status=resp["status"],
        )

    outcome = {
        "requested": len(candidates),
        "attempted": attempted,
        "resolved": len(success),
        "failed": len(errors),
        "stopped": stopped,
        "success": success,
        "errors": errors,
    }
    log_event(
        "batch_done",
        logger=log,
        tool="batch_resolve_my_bugs",
        requested=outcome["requested"],
        attempted=outcome["attempted"],
        resolved=outcome["resolved"],
        failed=outcome["failed"],
        stopped=stopped,
    )
    return outcome
