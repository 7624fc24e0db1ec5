from nestprobe.config import ProbeSettings
from nestprobe.domain.models import GlobalPrefix, RouteDescriptor
from nestprobe.export.http_file import (
    RequestDraft,
    build_query_string,
    default_draft,
    full_url,
    http_filename,
    join_url,
    render_curl,
    render_http_request,
    replace_path_params,
    request_headers,
)

BODY = '{\n  "name": "example_string"\n}'


def _route(**kw) -> RouteDescriptor:
    base = dict(method="POST", path="/users/:id", handler_name="update", path_params=["id"])
    base.update(kw)
    return RouteDescriptor(**base)


def test_default_draft_applies_detected_prefix():
    route = _route(has_body=True, body_example=BODY, query_params=["page", "*"])
    draft = default_draft(route, ProbeSettings(), GlobalPrefix(prefix="/v1", excludes=["health"]))

    assert draft.apply_global is True
    assert draft.global_prefix == "/v1"
    assert draft.path_params == {"id": ""}
    assert draft.query == {"page": ""}
    assert draft.body_text == BODY
    assert draft.headers == ["Content-Type: application/json"]


def test_default_draft_skips_prefix_for_excluded_route():
    route = _route(method="GET", path="/health", handler_name="health", path_params=[])
    draft = default_draft(route, ProbeSettings(), GlobalPrefix(prefix="/v1", excludes=["health"]))
    assert draft.apply_global is False
    assert full_url(draft) == "http://localhost:3000/health"


def test_settings_prefix_overrides_detected():
    settings = ProbeSettings(global_prefix="/manual")
    draft = default_draft(_route(), settings, GlobalPrefix(prefix="/v1"))
    assert draft.global_prefix == "/manual"

    draft = default_draft(_route(), settings, None)
    assert draft.apply_global is True
    assert draft.global_prefix == "/manual"


def test_replace_path_params():
    assert replace_path_params("/users/:id/items/:itemId", {"id": "7", "itemId": ""}) == "/users/7/items/:itemId"
    # :id must not eat the prefix of :idx
    assert replace_path_params("/a/:idx/:id", {"id": "1"}) == "/a/:idx/1"


def test_join_url_and_query_string():
    assert join_url("http://h/", "/x") == "http://h/x"
    assert join_url("http://h", "x") == "http://h/x"
    assert build_query_string({"q": "a b", "empty": "", "tag": "x&y"}) == "q=a%20b&tag=x%26y"


def test_request_headers_bearer_and_dedupe():
    draft = RequestDraft(base_url="http://h", path="/", headers=["Accept: */*", " Accept: */* ", ""], bearer_token="tok")
    assert request_headers(draft) == ["Accept: */*", "Authorization: Bearer tok"]

    draft.headers.append("authorization: Basic abc")
    assert "Authorization: Bearer tok" not in request_headers(draft)


def test_render_http_request_with_body():
    route = _route(path="/users", path_params=[], handler_name="create", has_body=True, body_example=BODY)
    draft = default_draft(route, ProbeSettings(), GlobalPrefix(prefix="/v1"))

    assert render_http_request("POST", draft) == (
        "### POST /v1/users\n"
        "POST http://localhost:3000/v1/users\n"
        "Content-Type: application/json\n"
        "\n"
        f"{BODY}\n"
    )


def test_get_requests_never_carry_a_body():
    draft = RequestDraft(base_url="http://h", path="/x", body_text='{"a": 1}')
    assert render_http_request("GET", draft).endswith("\n\n\n")
    assert "-d" not in render_curl("GET", draft)
    assert "-d '{\"a\": 1}'" in render_curl("POST", draft)


def test_render_curl_quotes_headers_and_body():
    draft = RequestDraft(
        base_url="http://h",
        path="/users/:id",
        path_params={"id": "5"},
        query={"verbose": "1"},
        headers=['X-Note: say "hi"'],
        body_text="{\"name\": \"O'Brien\"}",
    )
    assert render_curl("PUT", draft) == (
        'curl -i -X PUT "http://h/users/5?verbose=1" '
        '-H "X-Note: say \\"hi\\"" '
        "-d '{\"name\": \"O'\\''Brien\"}'"
    )


def test_http_filename():
    assert http_filename("GET", "/users/:id") == "request_GET__users_id.http"
