import asyncio
import json

import pytest
from aiohttp import ClientSession, test_utils, web

from apigroups.discovery import (
    ApiError,
    DiscoveryClient,
    discover_group_versions,
    load_discovery_file,
    maybe_parse_error,
    parse_api_group_list,
    parse_discovery_document,
)
from apigroups.model.group_version import GroupVersion
from apigroups.tools.logs import get_silent_logger

API_VERSIONS = {
    "kind": "APIVersions",
    "versions": ["v1"],
    "serverAddressByClientCIDRs": [],
}

API_GROUP_LIST = {
    "kind": "APIGroupList",
    "apiVersion": "v1",
    "groups": [
        {
            "name": "apps",
            "versions": [{"groupVersion": "apps/v1", "version": "v1"}],
            "preferredVersion": {"groupVersion": "apps/v1", "version": "v1"},
        },
        {
            "name": "gateway.networking.k8s.io",
            "versions": [
                {
                    "groupVersion": "gateway.networking.k8s.io/v1",
                    "version": "v1",
                },
                {
                    "groupVersion": "gateway.networking.k8s.io/v1beta1",
                    "version": "v1beta1",
                },
            ],
        },
    ],
}

FORBIDDEN = {
    "kind": "Status",
    "apiVersion": "v1",
    "status": "Failure",
    "message": 'forbidden: User "system:anonymous" cannot get path "/apis"',
    "reason": "Forbidden",
    "code": 403,
}

UNAVAILABLE = {
    "kind": "Status",
    "status": "Failure",
    "message": "the server is currently unable to handle the request",
    "reason": "ServiceUnavailable",
    "code": 503,
}


def test_parse_api_group_list():
    assert parse_api_group_list(API_GROUP_LIST) == [
        GroupVersion(group="apps", version="v1"),
        GroupVersion(group="gateway.networking.k8s.io", version="v1"),
        GroupVersion(group="gateway.networking.k8s.io", version="v1beta1"),
    ]


@pytest.mark.parametrize(
    "dct, expected",
    [
        (API_VERSIONS, [GroupVersion(group="", version="v1")]),
        (
            {**API_GROUP_LIST["groups"][0], "kind": "APIGroup"},
            [GroupVersion.parse("apps/v1")],
        ),
        (
            {"groupVersions": ["v1", "batch/v1"]},
            [GroupVersion.parse("v1"), GroupVersion.parse("batch/v1")],
        ),
        ({"kind": "APIGroupList", "groups": []}, []),
    ],
)
def test_parse_discovery_document(dct, expected):
    assert parse_discovery_document(dct) == expected


@pytest.mark.parametrize("dct", [{"kind": "Pod"}, ["v1"], {}])
def test_parse_discovery_document_unknown(dct):
    with pytest.raises(ValueError):
        parse_discovery_document(dct)


def test_maybe_parse_error():
    maybe_parse_error(API_GROUP_LIST)
    maybe_parse_error(["not", "a", "dict"])

    with pytest.raises(ApiError) as excinfo:
        maybe_parse_error(FORBIDDEN)

    assert excinfo.value.code == 403
    assert excinfo.value.reason == "Forbidden"
    assert not excinfo.value.is_retryable()
    assert ApiError(code=503, reason="", message="").is_retryable()


def test_load_discovery_file(tmp_path):
    json_path = tmp_path / "apis.json"
    json_path.write_text(json.dumps(API_GROUP_LIST))

    yaml_path = tmp_path / "api.yaml"
    yaml_path.write_text("kind: APIVersions\nversions:\n  - v1\n")

    assert len(load_discovery_file(str(json_path))) == 3
    assert load_discovery_file(str(yaml_path)) == [GroupVersion(group="", version="v1")]


def create_app(responses):
    """Serves each path from a list of (status, body) pairs, repeating the
    last one once the list runs out."""

    calls = {path: 0 for path in responses}

    async def handle(request):
        path = request.path
        index = min(calls[path], len(responses[path]) - 1)
        calls[path] += 1

        status, body = responses[path][index]
        return web.json_response(body, status=status)

    headers = []
    app = web.Application()

    @web.middleware
    async def record_headers(request, handler):
        headers.append(request.headers.get("Authorization"))
        return await handler(request)

    app.middlewares.append(record_headers)

    for path in responses:
        app.router.add_get(path, handle)

    return app, {"calls": calls, "headers": headers}


def run_client(app, token=None, max_retries=3):
    async def scenario():
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            async with ClientSession() as session:
                client = DiscoveryClient(
                    session=session,
                    server=str(server.make_url("/")),
                    token=token,
                    logger=get_silent_logger(),
                )
                client.retry_delay = 0
                client.max_retries = max_retries
                return await client.list_group_versions()
        finally:
            await server.close()

    return asyncio.run(scenario())


def test_list_group_versions():
    app, state = create_app(
        {
            "/api": [(200, API_VERSIONS)],
            "/apis": [(200, API_GROUP_LIST)],
        }
    )

    group_versions = run_client(app, token="s3cr3t")

    assert [gv.api_version for gv in group_versions] == [
        "v1",
        "apps/v1",
        "gateway.networking.k8s.io/v1",
        "gateway.networking.k8s.io/v1beta1",
    ]
    assert state["headers"] == ["Bearer s3cr3t", "Bearer s3cr3t"]


def test_list_group_versions_without_token():
    app, state = create_app(
        {
            "/api": [(200, API_VERSIONS)],
            "/apis": [(200, {"kind": "APIGroupList", "groups": []})],
        }
    )

    assert run_client(app) == [GroupVersion(group="", version="v1")]
    assert state["headers"] == [None, None]


def test_retries_transient_errors():
    app, state = create_app(
        {
            "/api": [(200, API_VERSIONS)],
            "/apis": [(503, UNAVAILABLE), (503, UNAVAILABLE), (200, API_GROUP_LIST)],
        }
    )

    group_versions = run_client(app)

    assert len(group_versions) == 4
    assert state["calls"]["/apis"] == 3


def test_gives_up_after_max_retries():
    app, state = create_app(
        {
            "/api": [(200, API_VERSIONS)],
            "/apis": [(503, UNAVAILABLE)],
        }
    )

    with pytest.raises(ApiError) as excinfo:
        run_client(app, max_retries=2)

    assert excinfo.value.code == 503
    assert state["calls"]["/apis"] == 3


def test_does_not_retry_permanent_errors():
    app, state = create_app(
        {
            "/api": [(200, API_VERSIONS)],
            "/apis": [(403, FORBIDDEN)],
        }
    )

    with pytest.raises(ApiError) as excinfo:
        run_client(app)

    assert excinfo.value.reason == "Forbidden"
    assert state["calls"]["/apis"] == 1


def test_discover_group_versions():
    app, state = create_app(
        {
            "/api": [(200, API_VERSIONS)],
            "/apis": [(200, API_GROUP_LIST)],
        }
    )

    async def scenario():
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            return await discover_group_versions(
                str(server.make_url("/")), logger=get_silent_logger()
            )
        finally:
            await server.close()

    assert len(asyncio.run(scenario())) == 4
