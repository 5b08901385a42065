# client.py -- Smart HTTP client for fetching from git servers
# Copyright (C) 2024 The gitlite authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# gitlite is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#


"""Client side of the git smart HTTP protocol.

Only fetching is supported. A fetch takes two requests:

 * ``GET info/refs?service=git-upload-pack`` to learn the references the
   server advertises.
 * ``POST git-upload-pack`` with the objects we want, answered by a NAK and
   a pack holding them.

Known capabilities of the server are read but never negotiated; the request
asks for full packs without side-band multiplexing.
"""

__all__ = [
    "GitReference",
    "HttpGitClient",
    "check_for_proxy_bypass",
    "default_urllib3_manager",
    "default_user_agent_string",
    "read_advertised_refs",
]

import ipaddress
import logging
import os
import re
from collections.abc import Callable, Sequence
from io import BytesIO
from typing import NamedTuple
from urllib.parse import urljoin, urlparse

import urllib3
from urllib3.exceptions import HTTPError, ProtocolError
from urllib3.response import BaseHTTPResponse

import gitlite

from .errors import (
    GitProtocolError,
    UnexpectedServerResponse,
    UnsupportedTransport,
)
from .objects import ObjectID, ShaFile, valid_hexsha
from .pack import PackDelta, parse_pack
from .protocol import Protocol, extract_capabilities, pkt_line, pkt_seq

logger = logging.getLogger(__name__)

UPLOAD_PACK_SERVICE = b"git-upload-pack"

ADVERTISEMENT_CONTENT_TYPE = "application/x-git-upload-pack-advertisement"
REQUEST_CONTENT_TYPE = "application/x-git-upload-pack-request"
RESULT_CONTENT_TYPE = "application/x-git-upload-pack-result"

# Sent in place of a reference by servers with nothing to advertise.
CAPABILITIES_REF = b"capabilities^{}"

NAK_LINE = pkt_line(b"NAK\n")

_SERVICE_LINE_RE = re.compile(rb"^[0-9a-f]{4}#")


class GitReference(NamedTuple):
    """A reference advertised by a remote.

    Attributes:
      name: Full name of the reference, e.g. ``refs/heads/main`` or ``HEAD``
      sha: Hex SHA the reference points at
    """

    name: bytes
    sha: ObjectID


def default_user_agent_string() -> str:
    """Return the default user agent string for gitlite."""
    # Start user agent with "git/", some hosting services require it.
    return "git/gitlite/{}".format(".".join([str(x) for x in gitlite.__version__]))


def check_for_proxy_bypass(base_url: str | None) -> bool:
    """Check whether no_proxy asks for the proxy to be skipped for a URL.

    Entries are matched the way curl does: ``*`` matches everything, a host
    name matches itself and its subdomains and an address or network matches
    the IP addresses inside it.
    """
    if not base_url:
        return False
    no_proxy_str = os.environ.get("no_proxy")
    if not no_proxy_str:
        return False
    hostname = urlparse(base_url).hostname
    if not hostname:
        return False
    try:
        hostname_ip = ipaddress.ip_address(hostname)
    except ValueError:
        hostname_ip = None

    for no_proxy_value in no_proxy_str.split(","):
        no_proxy_value = no_proxy_value.strip().lower().lstrip(".")
        if not no_proxy_value:
            continue
        if no_proxy_value == "*":
            return True
        if hostname_ip is not None:
            try:
                network = ipaddress.ip_network(no_proxy_value, strict=False)
            except ValueError:
                pass
            else:
                if hostname_ip in network:
                    return True
        if hostname == no_proxy_value or hostname.endswith("." + no_proxy_value):
            return True
    return False


def default_urllib3_manager(
    base_url: str | None = None,
    user_agent: str | None = None,
    pool_manager_cls: type | None = None,
    proxy_manager_cls: type | None = None,
) -> urllib3.ProxyManager | urllib3.PoolManager:
    """Return urllib3 connection pool manager.

    Honour proxies configured through the https_proxy, http_proxy and
    all_proxy environment variables, unless no_proxy excludes base_url.

    Args:
      base_url: URL the manager will be used for, checked against no_proxy
      user_agent: User agent to send instead of the default one
      pool_manager_cls: Pool manager class to use
      proxy_manager_cls: Proxy manager class to use
    Returns:
      Either a proxy_manager_cls (defaults to `urllib3.ProxyManager`)
      instance for proxy configurations, or a pool_manager_cls (defaults to
      `urllib3.PoolManager`) instance otherwise
    """
    proxy_server = None
    for proxyname in ("https_proxy", "http_proxy", "all_proxy"):
        proxy_server = os.environ.get(proxyname)
        if proxy_server:
            break

    if proxy_server and check_for_proxy_bypass(base_url):
        proxy_server = None

    if user_agent is None:
        user_agent = default_user_agent_string()
    headers = {"User-agent": user_agent}

    manager: urllib3.ProxyManager | urllib3.PoolManager
    if proxy_server:
        if proxy_manager_cls is None:
            proxy_manager_cls = urllib3.ProxyManager
        proxy_server_url = urlparse(proxy_server)
        if proxy_server_url.username is not None:
            proxy_headers = urllib3.make_headers(
                proxy_basic_auth=f"{proxy_server_url.username}:{proxy_server_url.password or ''}"
            )
        else:
            proxy_headers = {}
        logger.debug("using proxy %s", proxy_server_url.hostname)
        manager = proxy_manager_cls(
            proxy_server,
            proxy_headers=proxy_headers,
            headers=headers,
            cert_reqs="CERT_REQUIRED",
        )
    else:
        if pool_manager_cls is None:
            pool_manager_cls = urllib3.PoolManager
        manager = pool_manager_cls(headers=headers, cert_reqs="CERT_REQUIRED")
    return manager


def _wrap_urllib3_exceptions(
    func: Callable[..., bytes],
) -> Callable[..., bytes]:
    def wrapper(*args: object, **kwargs: object) -> bytes:
        try:
            return func(*args, **kwargs)
        except ProtocolError as error:
            raise GitProtocolError(str(error)) from error

    return wrapper


def read_advertised_refs(
    body: bytes, service: bytes = UPLOAD_PACK_SERVICE
) -> list[GitReference]:
    """Parse the body of a smart reference advertisement.

    The body opens with a ``# service=<service>`` pkt-line and a flush-pkt,
    followed by one pkt-line per reference and a final flush-pkt. The first
    reference carries the server capabilities after a NUL byte.

    Args:
      body: Response body of the info/refs request
      service: Service the advertisement should be for
    Returns: List of advertised references, in server order
    Raises:
      GitProtocolError: if the body is not a smart advertisement for service
    """
    if not _SERVICE_LINE_RE.match(body):
        raise GitProtocolError(
            f"unexpected first line {body[:40]!r} from smart server; not a "
            "git repository?"
        )
    buf = BytesIO(body)
    proto = Protocol(buf.read)
    first = proto.read_pkt_line()
    if first is None or first.rstrip(b"\n") != b"# service=" + service:
        raise GitProtocolError(f"unexpected first line {first!r} from smart server")

    refs: list[GitReference] = []
    if buf.tell() == len(body):
        return refs
    pkt = proto.read_pkt_line()
    if pkt is None:
        if buf.tell() == len(body):
            return refs
        pkt = proto.read_pkt_line()
    while pkt is not None:
        line, capabilities = extract_capabilities(pkt)
        if capabilities:
            logger.debug("server capabilities: %r", capabilities)
        try:
            sha, name = line.rstrip(b"\n").split(b" ", 1)
        except ValueError as exc:
            raise GitProtocolError(f"invalid ref line {pkt!r}") from exc
        if not valid_hexsha(sha):
            raise GitProtocolError(f"invalid object id {sha!r} for {name!r}")
        if name != CAPABILITIES_REF:
            refs.append(GitReference(name, sha))
        pkt = proto.read_pkt_line()
    return refs


class HttpGitClient:
    """Git client that fetches over smart HTTP(S) using urllib3."""

    def __init__(
        self,
        base_url: str,
        pool_manager: urllib3.PoolManager | None = None,
    ) -> None:
        """Initialize HttpGitClient.

        Args:
          base_url: URL of the remote repository
          pool_manager: urllib3 pool manager to send requests through; one
            is created by default_urllib3_manager when omitted
        """
        self._base_url = base_url.rstrip("/") + "/"
        if pool_manager is None:
            self.pool_manager = default_urllib3_manager(base_url=base_url)
        else:
            self.pool_manager = pool_manager

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._base_url!r})"

    def get_url(self) -> str:
        """Return the base URL of the remote repository."""
        return self._base_url.rstrip("/")

    def _http_request(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> tuple[BaseHTTPResponse, Callable[..., bytes]]:
        """Perform HTTP request.

        Args:
          url: Request URL.
          headers: Optional custom headers to override defaults.
          data: Request data; the request is a POST when given, a GET
            otherwise.

        Returns:
          Tuple (response, read), where response is an urllib3 response
          object and read is a function that reads from the response body
          and raises GitProtocolError on transport errors.

        Raises:
          GitProtocolError: if the request could not be sent
        """
        req_headers = dict(self.pool_manager.headers)
        if headers is not None:
            req_headers.update(headers)
        req_headers["Pragma"] = "no-cache"

        logger.debug("%s %s", "GET" if data is None else "POST", url)
        try:
            if data is None:
                resp = self.pool_manager.request(
                    "GET", url, headers=req_headers, preload_content=False
                )
            else:
                resp = self.pool_manager.request(
                    "POST",
                    url,
                    headers=req_headers,
                    body=data,
                    preload_content=False,
                )
        except HTTPError as e:
            raise GitProtocolError(str(e)) from e
        return resp, _wrap_urllib3_exceptions(resp.read)

    def discover_references(self) -> list[GitReference]:
        """Ask the server which references it has.

        Returns: List of advertised references; empty for an empty repository
        Raises:
          UnsupportedTransport: if the server does not speak the smart protocol
          GitProtocolError: on an unexpected status or a malformed advertisement
        """
        url = urljoin(
            self._base_url, "info/refs?service=" + UPLOAD_PACK_SERVICE.decode("ascii")
        )
        resp, read = self._http_request(url)
        try:
            content_type = resp.headers.get("Content-Type", "")
            if content_type.lower() != ADVERTISEMENT_CONTENT_TYPE:
                raise UnsupportedTransport(
                    f"unexpected content type {content_type!r} from {url}; "
                    "only the smart protocol is supported"
                )
            if resp.status not in (200, 304):
                raise GitProtocolError(f"unexpected http resp {resp.status} for {url}")
            body = read()
        finally:
            resp.close()
        refs = read_advertised_refs(body)
        logger.debug("%d references advertised by %s", len(refs), self.get_url())
        return refs

    def upload_pack(self, wants: Sequence[ObjectID]) -> bytes:
        """Request a pack containing the wanted objects.

        Args:
          wants: Hex SHAs of the objects to fetch
        Returns: The pack sent by the server
        Raises:
          ValueError: if wants is empty
          UnexpectedServerResponse: if the server does not answer with NAK
          GitProtocolError: on an unexpected status or transport errors
        """
        if not wants:
            raise ValueError("no objects wanted")
        url = urljoin(self._base_url, UPLOAD_PACK_SERVICE.decode("ascii"))
        data = pkt_seq(*[b"want " + want + b"\n" for want in wants]) + pkt_line(
            b"done\n"
        )
        headers = {
            "Content-Type": REQUEST_CONTENT_TYPE,
            "Accept": RESULT_CONTENT_TYPE,
        }
        resp, read = self._http_request(url, headers, data)
        try:
            if resp.status != 200:
                raise GitProtocolError(f"unexpected http resp {resp.status} for {url}")
            body = read()
        finally:
            resp.close()
        if not body.startswith(NAK_LINE):
            raise UnexpectedServerResponse(
                f"expected NAK from server, got {body[:len(NAK_LINE)]!r}"
            )
        return body[len(NAK_LINE) :]

    def fetch_pack(
        self, wants: Sequence[ObjectID]
    ) -> tuple[list[ShaFile], list[PackDelta]]:
        """Fetch and decode a pack with the wanted objects.

        Returns: Tuple of (whole objects, pending ref-deltas)
        """
        return parse_pack(self.upload_pack(wants))
