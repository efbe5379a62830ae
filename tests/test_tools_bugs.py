import json

import pytest
import respx
from httpx import Response
from zentao_mcp.client import ZenTaoClient
from zentao_mcp.errors import (
    InvalidPathError,
    InvalidVerifyResultError,
    ZenTaoHTTPError,
    ZenTaoValidationError,
)
from zentao_mcp.tools.bugs import (
    activate_bug,
    close_bug,
    comment_bug,
    get_bug_detail,
    list_my_bugs,
    resolve_bug,
    verify_bug,
)

BASE = "https://zt.example.com"
API = f"{BASE}/api.php/v1"
TOKEN_URL = f"{API}/tokens"


def _bug(bug_id, status="active", assigned_to="alice", title="Crash on save"):
    return {
        "id": bug_id,
        "title": title,
        "status": status,
        "assignedTo": assigned_to,
        "steps": "<p>Open editor</p>",
    }


@pytest.fixture
def client():
    return ZenTaoClient(base_url=BASE, account="alice", password="secret")


@pytest.fixture
def scoped_client():
    return ZenTaoClient(
        base_url=BASE, account="alice", password="secret", default_product_id=3
    )


@pytest.fixture(autouse=True)
def login():
    with respx.mock(assert_all_called=False) as mock:
        mock.post(TOKEN_URL).mock(return_value=Response(200, json={"token": "tok-1234567890"}))
        yield mock


# --- list_my_bugs ----------------------------------------------------------- #


@pytest.mark.asyncio
async def test_list_my_bugs_refilters_status_locally(client, login):
    bugs = [
        _bug(1),
        _bug(2),
        _bug(3, status="ACTIVE"),
        _bug(4, status="resolved"),
        _bug(5, status="resolved"),
    ]
    route = login.get(f"{API}/bugs").mock(
        return_value=Response(200, json={"page": 1, "bugs": bugs})
    )

    async with client:
        result = await list_my_bugs(client, status="active")

    assert result["total"] == 5
    assert result["matched"] == 3
    assert [b["id"] for b in result["bugs"]] == [1, 2, 3]
    params = route.calls[0].request.url.params
    assert params["assignedTo"] == "alice"
    assert params["status"] == "active"
    assert params["page"] == "1"
    assert params["limit"] == "50"
    assert "product" not in params


@pytest.mark.asyncio
async def test_list_my_bugs_filters_assignee_objects_and_keyword(client, login):
    bugs = [
        {"id": 1, "title": "Login crash", "status": "active", "assignedTo": {"account": "Alice", "realname": "A"}},
        {"id": 2, "title": "Login slow", "status": "active", "assignedTo": "bob"},
        {"id": 3, "title": "Export", "keywords": "LOGIN", "status": "active", "assignedTo": "alice"},
        {"id": 4, "title": "Export", "status": "active", "assignedTo": "alice"},
    ]
    login.get(f"{API}/bugs").mock(return_value=Response(200, json={"data": bugs}))

    async with client:
        result = await list_my_bugs(client, keyword="login")

    assert [b["id"] for b in result["bugs"]] == [1, 3]
    assert result["total"] == 4


@pytest.mark.asyncio
async def test_list_my_bugs_empty_assignee_disables_filter(client, login):
    bugs = [_bug(1, assigned_to="bob"), _bug(2, assigned_to="alice")]
    route = login.get(f"{API}/bugs").mock(return_value=Response(200, json=bugs))

    async with client:
        result = await list_my_bugs(client, assignee="")

    assert result["matched"] == 2
    assert "assignedTo" not in route.calls[0].request.url.params


@pytest.mark.asyncio
async def test_list_my_bugs_explicit_product_uses_scoped_path(client, login):
    route = login.get(f"{API}/products/9/bugs").mock(
        return_value=Response(200, json={"bugs": [_bug(1)]})
    )

    async with client:
        result = await list_my_bugs(client, product_id=9)

    assert result["path"] == "/products/9/bugs"
    assert result["scope_fallback"] is False
    assert "product" not in route.calls[0].request.url.params


@pytest.mark.asyncio
async def test_list_my_bugs_retries_once_with_product_scope(scoped_client, login):
    unscoped = login.get(f"{API}/bugs").mock(
        return_value=Response(400, json={"error": "Need product id."})
    )
    scoped = login.get(f"{API}/products/3/bugs").mock(
        return_value=Response(200, json={"bugs": [_bug(1), _bug(2)]})
    )

    async with scoped_client:
        result = await list_my_bugs(scoped_client)

    assert unscoped.call_count == 1
    assert unscoped.calls[0].request.url.params["product"] == "3"
    assert scoped.call_count == 1
    assert result["scope_fallback"] is True
    assert result["path"] == "/products/3/bugs"
    assert result["matched"] == 2


@pytest.mark.asyncio
async def test_list_my_bugs_scope_fallback_fires_at_most_once(scoped_client, login):
    login.get(f"{API}/bugs").mock(
        return_value=Response(400, json={"error": "Need product id."})
    )
    scoped = login.get(f"{API}/products/3/bugs").mock(
        return_value=Response(400, json={"error": "Need product id."})
    )

    async with scoped_client:
        with pytest.raises(ZenTaoHTTPError) as exc:
            await list_my_bugs(scoped_client)

    assert scoped.call_count == 1
    assert "/products/3/bugs" in exc.value.url


@pytest.mark.asyncio
async def test_list_my_bugs_no_fallback_for_unrelated_errors(scoped_client, login):
    login.get(f"{API}/bugs").mock(return_value=Response(500, json={"error": "boom"}))
    scoped = login.get(f"{API}/products/3/bugs").mock(
        return_value=Response(200, json={"bugs": []})
    )

    async with scoped_client:
        with pytest.raises(ZenTaoHTTPError) as exc:
            await list_my_bugs(scoped_client)

    assert exc.value.status_code == 500
    assert not scoped.called


@pytest.mark.asyncio
async def test_list_my_bugs_no_fallback_when_path_is_explicit(scoped_client, login):
    login.get(f"{API}/custom/bugs").mock(
        return_value=Response(400, json={"error": "Need product id."})
    )
    scoped = login.get(f"{API}/products/3/bugs").mock(
        return_value=Response(200, json={"bugs": []})
    )

    async with scoped_client:
        with pytest.raises(ZenTaoHTTPError):
            await list_my_bugs(scoped_client, path="/custom/bugs")

    assert not scoped.called


@pytest.mark.asyncio
async def test_list_my_bugs_uses_pluggable_scope_predicate(login):
    client = ZenTaoClient(
        base_url=BASE,
        account="alice",
        password="secret",
        default_product_id=3,
        scope_required=lambda exc: exc.status_code == 418,
    )
    login.get(f"{API}/bugs").mock(return_value=Response(418, text="teapot"))
    scoped = login.get(f"{API}/products/3/bugs").mock(
        return_value=Response(200, json={"bugs": []})
    )

    async with client:
        result = await list_my_bugs(client)

    assert scoped.called
    assert result["scope_fallback"] is True


@pytest.mark.asyncio
async def test_list_my_bugs_no_fallback_without_default_product(client, login):
    login.get(f"{API}/bugs").mock(
        return_value=Response(400, json={"error": "Need product id."})
    )

    async with client:
        with pytest.raises(ZenTaoHTTPError):
            await list_my_bugs(client)


@pytest.mark.asyncio
async def test_list_my_bugs_unexpected_shape_is_empty(client, login):
    login.get(f"{API}/bugs").mock(return_value=Response(200, json={"result": "ok"}))

    async with client:
        result = await list_my_bugs(client)

    assert result["total"] == 0
    assert result["bugs"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [{"limit": 0}, {"limit": 201}, {"page": 0}, {"product_id": -1}],
)
async def test_list_my_bugs_rejects_bad_arguments(client, login, kwargs):
    async with client:
        with pytest.raises(ZenTaoValidationError):
            await list_my_bugs(client, **kwargs)

    assert not login.calls


@pytest.mark.asyncio
async def test_list_my_bugs_rejects_absolute_path(client, login):
    async with client:
        with pytest.raises(InvalidPathError):
            await list_my_bugs(client, path="https://evil.example/bugs")

    assert not login.calls


# --- get_bug_detail ----------------------------------------------------------- #


@pytest.mark.asyncio
async def test_get_bug_detail_extracts_images(client, login):
    bug = {
        "id": 42,
        "title": "Broken chart",
        "steps": (
            '<p><img src="/file-read-7.png" alt="x"/></p>'
            "see https://cdn.example.com/shot.jpg and https://cdn.example.com/shot.jpg"
        ),
        "comment": '<img src="/file-read-7.png">',
    }
    login.get(f"{API}/bugs/42").mock(return_value=Response(200, json={"data": {"bug": bug}}))

    async with client:
        result = await get_bug_detail(client, 42)

    assert result["found"] is True
    assert result["bug"]["title"] == "Broken chart"
    assert result["images"] == ["/file-read-7.png", "https://cdn.example.com/shot.jpg"]


@pytest.mark.asyncio
async def test_get_bug_detail_not_found_shape(client, login):
    login.get(f"{API}/bugs/42").mock(return_value=Response(200, json=[]))

    async with client:
        result = await get_bug_detail(client, 42)

    assert result == {"id": 42, "found": False, "bug": None, "images": []}


@pytest.mark.asyncio
async def test_get_bug_detail_404_propagates(client, login):
    login.get(f"{API}/bugs/999").mock(return_value=Response(404, json={"error": "gone"}))

    async with client:
        with pytest.raises(ZenTaoHTTPError) as exc:
            await get_bug_detail(client, 999)

    assert exc.value.status_code == 404


# --- resolve / close / activate ---------------------------------------------- #


@pytest.mark.asyncio
async def test_resolve_prefers_solution_over_comment(client, login):
    route = login.post(f"{API}/bugs/7/resolve").mock(
        return_value=Response(200, json={"id": 7, "status": "resolved"})
    )

    async with client:
        result = await resolve_bug(client, 7, solution="A", comment="B")

    body = json.loads(route.calls[0].request.content)
    assert body == {"resolution": "fixed", "resolvedBuild": "trunk", "comment": "Solution: A"}
    assert "B" not in body["comment"]
    assert result["action"] == "resolve"
    assert result["status"] == 200
    assert result["data"]["status"] == "resolved"


@pytest.mark.asyncio
async def test_resolve_uses_comment_then_generated_text(client, login):
    route = login.post(f"{API}/bugs/7/resolve").mock(
        return_value=Response(200, json={"id": 7})
    )

    async with client:
        await resolve_bug(client, 7, comment="B", solution="   ")
        await resolve_bug(client, 7, resolution="bydesign")

    first = json.loads(route.calls[0].request.content)
    second = json.loads(route.calls[1].request.content)
    assert first["comment"] == "B"
    assert second["resolution"] == "bydesign"
    assert second["comment"] == "Resolved as bydesign by zentao-mcp."


@pytest.mark.asyncio
async def test_resolve_with_template_without_placeholder(client, login):
    route = login.post(f"{API}/v2/bugs/7/resolve").mock(
        return_value=Response(200, json={})
    )

    async with client:
        result = await resolve_bug(client, 7, path_template="/v2/bugs/")

    assert route.called
    assert result["path"] == "/v2/bugs/7/resolve"


@pytest.mark.asyncio
async def test_close_and_activate_bodies(client, login):
    close = login.post(f"{API}/bugs/7/close").mock(return_value=Response(200, json={}))
    activate = login.post(f"{API}/bugs/7/activate").mock(
        return_value=Response(200, json={})
    )

    async with client:
        await close_bug(client, 7)
        await activate_bug(client, 7, comment="still broken")

    assert json.loads(close.calls[0].request.content) == {}
    assert json.loads(activate.calls[0].request.content) == {"comment": "still broken"}


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", [0, -1])
async def test_mutations_reject_invalid_ids(client, login, bad_id):
    async with client:
        with pytest.raises(ZenTaoValidationError):
            await resolve_bug(client, bad_id)
        with pytest.raises(ZenTaoValidationError):
            await close_bug(client, bad_id)

    assert not login.calls


# --- verify ------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_verify_pass_closes(client, login):
    close = login.post(f"{API}/bugs/7/close").mock(return_value=Response(200, json={}))
    activate = login.post(f"{API}/bugs/7/activate").mock(
        return_value=Response(200, json={})
    )

    async with client:
        result = await verify_bug(client, 7, "pass", comment="ok on staging")

    assert close.called
    assert not activate.called
    assert result["result"] == "pass"
    assert result["action"] == "close"


@pytest.mark.asyncio
async def test_verify_fail_activates(client, login):
    close = login.post(f"{API}/bugs/7/close").mock(return_value=Response(200, json={}))
    activate = login.post(f"{API}/bugs/7/activate").mock(
        return_value=Response(200, json={})
    )

    async with client:
        result = await verify_bug(client, 7, " FAIL ")

    assert activate.called
    assert not close.called
    assert result["action"] == "activate"


@pytest.mark.asyncio
async def test_verify_rejects_other_results_before_network(client, login):
    async with client:
        with pytest.raises(InvalidVerifyResultError):
            await verify_bug(client, 7, "maybe")

    assert not login.calls


# --- comment ------------------------------------------------------------------ #


@pytest.mark.asyncio
async def test_comment_posts_to_comment_path(client, login):
    route = login.post(f"{API}/bugs/7/comment").mock(
        return_value=Response(201, json={"id": 100})
    )

    async with client:
        result = await comment_bug(client, 7, "looking into it")

    assert json.loads(route.calls[0].request.content) == {"comment": "looking into it"}
    assert result["path"] == "/bugs/7/comment"
    assert result["status"] == 201


@pytest.mark.asyncio
async def test_comment_404_retries_plural_path_once(client, login):
    singular = login.post(f"{API}/bugs/7/comment").mock(
        return_value=Response(404, json={"error": "no route"})
    )
    plural = login.post(f"{API}/bugs/7/comments").mock(
        return_value=Response(200, json={"id": 100})
    )

    async with client:
        result = await comment_bug(client, 7, "hello")

    assert singular.call_count == 1
    assert plural.call_count == 1
    assert result["path"] == "/bugs/7/comments"


@pytest.mark.asyncio
async def test_comment_surfaces_plural_path_error(client, login):
    login.post(f"{API}/bugs/7/comment").mock(return_value=Response(404, text="missing"))
    plural = login.post(f"{API}/bugs/7/comments").mock(
        return_value=Response(403, json={"error": "forbidden"})
    )

    async with client:
        with pytest.raises(ZenTaoHTTPError) as exc:
            await comment_bug(client, 7, "hello")

    assert plural.call_count == 1
    assert exc.value.status_code == 403
    assert exc.value.url.endswith("/bugs/7/comments")


@pytest.mark.asyncio
async def test_comment_non_404_is_not_retried(client, login):
    login.post(f"{API}/bugs/7/comment").mock(return_value=Response(500, text="boom"))
    plural = login.post(f"{API}/bugs/7/comments").mock(
        return_value=Response(200, json={})
    )

    async with client:
        with pytest.raises(ZenTaoHTTPError) as exc:
            await comment_bug(client, 7, "hello")

    assert exc.value.status_code == 500
    assert not plural.called


@pytest.mark.asyncio
async def test_comment_requires_text(client, login):
    async with client:
        with pytest.raises(ZenTaoValidationError):
            await comment_bug(client, 7, "   ")

    assert not login.calls


@pytest.mark.asyncio
@pytest.mark.parametrize("result", ["", "   "])
async def test_verify_blank_result_is_an_invalid_result(client, login, result):
    async with client:
        with pytest.raises(InvalidVerifyResultError):
            await verify_bug(client, 7, result)

    assert not login.calls


# --- absolute path templates -------------------------------------------------- #

EVIL_TEMPLATE = "http://evil.example/bugs/{id}"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operation, extra",
    [
        (get_bug_detail, {}),
        (resolve_bug, {}),
        (close_bug, {}),
        (activate_bug, {}),
        (comment_bug, {"comment": "hello"}),
    ],
)
async def test_absolute_path_templates_are_rejected_before_login(
    client, login, operation, extra
):
    async with client:
        with pytest.raises(InvalidPathError):
            await operation(client, 7, path_template=EVIL_TEMPLATE, **extra)

    assert not login.calls


@pytest.mark.asyncio
async def test_list_my_bugs_falls_back_on_chinese_scope_message(scoped_client, login):
    login.get(f"{API}/bugs").mock(
        return_value=Response(
            400,
            content=b'{"error":"\\u8bf7\\u5148\\u9009\\u62e9\\u4ea7\\u54c1"}',
            headers={"content-type": "application/json"},
        )
    )
    scoped = login.get(f"{API}/products/3/bugs").mock(
        return_value=Response(200, json={"bugs": [_bug(1)]})
    )

    async with scoped_client:
        result = await list_my_bugs(scoped_client)

    assert scoped.call_count == 1
    assert result["scope_fallback"] is True
