from __future__ import annotations

from typing import Any, Dict, List, Optional

from zentao_mcp.client import ZenTaoClient
from zentao_mcp.extract import extract_list
from zentao_mcp.models import ProjectListQuery, validate_input

PROJECTS_PATH = "/projects"

# ZenTao spells role fields both ways depending on version
_PROJECT_TEXT_FIELDS = (
    "name",
    "code",
    "desc",
    "PM",
    "pm",
    "PO",
    "po",
    "QD",
    "qd",
    "RD",
    "rd",
    "status",
)


def _project_matches(project: Any, needle: str) -> bool:
    if not isinstance(project, dict):
        return False
    if not needle:
        return True
    values = [
        str(project.get(field)).casefold()
        for field in _PROJECT_TEXT_FIELDS
        if project.get(field)
    ]
    return any(needle in v for v in values)


async def list_my_projects(
    client: ZenTaoClient, keyword: Optional[str] = None
) -> Dict[str, Any]:
    """
    List projects visible to the configured account, optionally narrowed by a
    keyword matched against name, code, description, roles and status.

    Returns:
        {"total": int, "matched": int, "projects": [...]}
    """
    query = validate_input(ProjectListQuery, keyword=keyword)
    needle = (query.keyword or "").casefold()

    resp = await client.get(PROJECTS_PATH, tool="list_my_projects")
    projects: List[Any] = extract_list(resp.data, "projects")
    matched = [p for p in projects if _project_matches(p, needle)]

    return {"total": len(projects), "matched": len(matched), "projects": matched}
