"""Standalone HTTP-01 challenge responder."""
import contextlib
import functools
import http.client as http_client
import http.server as BaseHTTPServer
import logging
import socket
import threading
from typing import Any
from typing import Iterator

from certwarden import errors
from certwarden._internal import constants

logger = logging.getLogger(__name__)


class HTTPServer(BaseHTTPServer.HTTPServer):
    """Generic HTTP Server."""

    allow_reuse_address = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.ipv6 = kwargs.pop("ipv6", False)
        if self.ipv6:
            self.address_family = socket.AF_INET6
        else:
            self.address_family = socket.AF_INET
        super().__init__(*args, **kwargs)


class HTTP01RequestHandler(BaseHTTPServer.BaseHTTPRequestHandler):
    """Serves a single HTTP-01 key authorization.

    :ivar str resource_path: the only path answered with 200
    :ivar bytes resource_body: body of the 200 response

    """
    server_version = "certwarden http-01 responder"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.resource_path = kwargs.pop("resource_path")
        self.resource_body = kwargs.pop("resource_body")
        self._timeout = kwargs.pop("timeout", constants.CHALLENGE_REQUEST_TIMEOUT)
        super().__init__(*args, **kwargs)

    # BaseHTTPRequestHandler declares 'timeout' at class level; a property lets
    # every handler instance carry the value it was built with.
    @property
    def timeout(self) -> int:  # type: ignore[override]
        """Socket timeout applied to the request."""
        return self._timeout

    def log_message(self, format: str, *args: Any) -> None:  # pylint: disable=redefined-builtin
        """Log arbitrary message."""
        logger.debug("%s - - %s", self.client_address[0], format % args)

    def do_GET(self) -> None:  # pylint: disable=invalid-name,missing-function-docstring
        if self.path == self.resource_path:
            self.handle_resource()
        else:
            self.handle_404()

    def handle_resource(self) -> None:
        """Answer with the key authorization."""
        self.log_message("Serving HTTP01 resource %s", self.path)
        self.send_response(http_client.OK)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(self.resource_body)))
        self.end_headers()
        self.wfile.write(self.resource_body)

    def handle_404(self) -> None:
        """Handler 404 Not Found errors."""
        self.log_message("%s does not correspond to the challenge. ignoring", self.path)
        self.send_response(http_client.NOT_FOUND, message="Not Found")
        self.send_header("Content-Type", "text/html")
        self.send_header("Content-Length", "3")
        self.end_headers()
        self.wfile.write(b"404")

    @classmethod
    def partial_init(cls, resource_path: str, resource_body: bytes,
                     timeout: int) -> 'functools.partial[HTTP01RequestHandler]':
        """Partially initialize this handler.

        This is useful because `socketserver.BaseServer` takes
        uninitialized handler and initializes it with the current
        request.

        """
        return functools.partial(cls, resource_path=resource_path,
                                 resource_body=resource_body, timeout=timeout)


@contextlib.contextmanager
def serve(address: tuple[str, int], path: str, body: bytes,
          timeout: int = constants.CHALLENGE_REQUEST_TIMEOUT) -> Iterator[HTTPServer]:
    """Answer ``path`` with ``body`` for the duration of the ``with`` block.

    The listener is shut down, closed and its thread joined however the
    block is left.

    :param tuple address: ``(host, port)`` to bind; an empty host binds
        all IPv4 interfaces, a host containing ``:`` is bound as IPv6
    :param str path: request path of the challenge resource
    :param bytes body: key authorization served at ``path``

    :yields: the running server, whose ``server_address`` holds the
        actual bound address

    :raises .errors.StandaloneBindError: if the address cannot be bound

    """
    handler = HTTP01RequestHandler.partial_init(path, body, timeout)
    try:
        server = HTTPServer(address, handler, ipv6=":" in address[0])
    except OSError as error:
        raise errors.StandaloneBindError(error, address)
    logger.debug("Successfully bound to %s:%s", *server.server_address[:2])

    thread = threading.Thread(target=server.serve_forever,
                              name="certwarden-http01", daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join()
        logger.debug("Stopped HTTP01 responder on %s:%s", *address)
