import asyncio
import logging
from asyncio.exceptions import TimeoutError
from typing import Any, List, Optional

import yaml
from aiohttp import BasicAuth, ClientSession
from aiohttp.client import ClientTimeout
from aiohttp.client_exceptions import (
    ClientConnectorCertificateError,
    ClientConnectorError,
    ClientConnectorSSLError,
    ClientOSError,
    ServerTimeoutError,
    TooManyRedirects,
)

from apigroups.model.group_version import GroupVersion
from apigroups.tools.logs import CtxLogger


class ApiError(Exception):
    def __init__(self, code: int, reason: str, message: str) -> None:
        super().__init__()

        self.code = code
        self.reason = reason
        self.message = message

    def __repr__(self) -> str:
        return "%s(code=%r, reason=%r, message=%r)" % (
            self.__class__.__name__,
            self.code,
            self.reason,
            self.message,
        )

    def __str__(self) -> str:
        return self.__repr__()

    def is_retryable(self):
        return self.code in (429, 500, 502, 503, 504)


class BearerAuth(BasicAuth):
    """
    aiohttp only ships BasicAuth and does:

        def update_auth(self, auth: Optional[BasicAuth]) -> None:
            ...
            if not isinstance(auth, helpers.BasicAuth):

    So to slot into this API we need a subclass of BasicAuth.
    """

    def __new__(cls, token: str) -> "BearerAuth":
        return super().__new__(cls, token)  # type: ignore

    def __init__(self, token: str) -> None:
        self.token = token

    def encode(self) -> str:
        return f"Bearer {self.token}"


def maybe_parse_error(dct) -> None:
    if isinstance(dct, dict) and dct.get("status") == "Failure":
        message = dct.get("message", "")
        reason = dct.get("reason", "")
        code = dct.get("code", 0)
        raise ApiError(code=code, reason=reason, message=message)


def parse_api_versions(dct) -> List[GroupVersion]:
    """
    The core group, served on /api:

    {
      "kind": "APIVersions",
      "versions": ["v1"]
    }
    """

    return [GroupVersion(group="", version=version) for version in dct["versions"]]


def parse_api_group(item) -> List[GroupVersion]:
    name = item["name"]

    group_versions = []
    for version_dct in item.get("versions") or []:
        group_versions.append(GroupVersion(group=name, version=version_dct["version"]))

    return group_versions


def parse_api_group_list(dct) -> List[GroupVersion]:
    """
    The named groups, served on /apis:

    {
      "kind": "APIGroupList",
      "groups": [
        {
          "name": "apps",
          "versions": [{"groupVersion": "apps/v1", "version": "v1"}],
          "preferredVersion": {"groupVersion": "apps/v1", "version": "v1"}
        }
      ]
    }

    We return one GroupVersion per entry in `versions`.
    """

    group_versions = []
    for item in dct.get("groups") or []:
        group_versions.extend(parse_api_group(item))

    return group_versions


def parse_discovery_document(dct) -> List[GroupVersion]:
    maybe_parse_error(dct)

    if not isinstance(dct, dict):
        raise ValueError("Discovery document is not a mapping: %r" % type(dct))

    kind = dct.get("kind")

    if kind == "APIVersions":
        return parse_api_versions(dct)

    if kind == "APIGroupList":
        return parse_api_group_list(dct)

    if kind == "APIGroup":
        return parse_api_group(dct)

    # a hand written list: {"groupVersions": ["v1", "apps/v1"]}
    if kind is None and "groupVersions" in dct:
        return [GroupVersion.parse(value) for value in dct["groupVersions"]]

    raise ValueError("Unknown discovery document kind: %r" % kind)


def load_discovery_file(filepath: str) -> List[GroupVersion]:
    # json is a subset of yaml so this reads both
    with open(filepath, "rb") as fl:
        dct = yaml.load(fl, Loader=yaml.SafeLoader)

    return parse_discovery_document(dct)


class DiscoveryClient:
    max_retries = 3
    retry_delay = 0.3

    retriable_connection_errors = (
        ClientConnectorError,
        ServerTimeoutError,
        TimeoutError,
        TooManyRedirects,
        ClientOSError,
        ClientConnectorCertificateError,
        ClientConnectorSSLError,
    )

    def __init__(
        self,
        *,
        session: ClientSession,
        server: str,
        token: Optional[str] = None,
        logger=None,
    ) -> None:
        self.session = session
        self.server = server.rstrip("/")
        self.auth = BearerAuth(token=token) if token else None
        self.logger = logger or logging.getLogger("discovery")

    def get_ctx_logger(self) -> CtxLogger:
        return CtxLogger(
            logger=self.logger,
            extra={"server": self.server},
            prefix="[%(server)s] ",
        )

    async def get_json_attempt(self, path: str) -> Any:
        log = self.get_ctx_logger()
        url = f"{self.server}{path}"

        kwargs = dict(
            auth=self.auth,
            timeout=ClientTimeout(
                sock_connect=3,
                total=15,
            ),
        )

        log.info("Fetching discovery document %s", url)
        async with self.session.get(url, allow_redirects=True, **kwargs) as response:

            log.debug("Parsing %s response as json", path)
            js = await response.json(content_type=None)

            # may raise
            maybe_parse_error(js)

            return js

    async def get_json(self, path: str) -> Any:
        log = self.get_ctx_logger()
        retries = 0

        while True:
            try:
                return await self.get_json_attempt(path)

            except self.retriable_connection_errors as exc:
                if retries < self.max_retries:
                    retries += 1
                    log.warning(
                        "Discovery request failed with retryable error: %r - retrying",
                        exc,
                    )

                    await asyncio.sleep(self.retry_delay)
                    continue

                log.exception(
                    "Discovery request failed after %s retries - giving up", retries
                )
                raise

            except ApiError as exc:
                # if the http error looks transient - try again
                if exc.is_retryable() and retries < self.max_retries:
                    retries += 1
                    log.warning(
                        "Discovery request failed with retryable error: %r - retrying",
                        exc,
                    )

                    await asyncio.sleep(self.retry_delay)
                    continue

                log.exception(
                    "Discovery request failed with non-retryable error - giving up"
                )
                raise

    async def list_core_versions(self) -> List[GroupVersion]:
        js = await self.get_json("/api")
        return parse_api_versions(js)

    async def list_api_groups(self) -> List[GroupVersion]:
        js = await self.get_json("/apis")
        return parse_api_group_list(js)

    async def list_group_versions(self) -> List[GroupVersion]:
        core, named = await asyncio.gather(
            self.list_core_versions(),
            self.list_api_groups(),
        )

        group_versions = core + named
        self.get_ctx_logger().debug("Discovered %s group versions", len(group_versions))
        return group_versions


async def discover_group_versions(
    server: str, token: Optional[str] = None, logger=None
) -> List[GroupVersion]:
    async with ClientSession() as session:
        client = DiscoveryClient(
            session=session, server=server, token=token, logger=logger
        )
        return await client.list_group_versions()
