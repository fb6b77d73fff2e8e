"""
End-to-end tests against a real server on an ephemeral port.

The server runs its loop in a background thread (see conftest.TestServer);
the tests talk to it over plain sockets.
"""

import logging
import re
import socket
import threading
import time
from dataclasses import replace

import pytest

from slowserver import HTTPServer, ServerState, ServerStartError
from slowserver.dispatcher import Dispatcher
from slowserver.http import HTTPStatus, json_response


ISO_8601 = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def timed(fn, *args, **kwargs):
    start = time.monotonic()
    result = fn(*args, **kwargs)
    return result, time.monotonic() - start


class TestRoutes:

    def test_root(self, test_server, client):
        response, elapsed = timed(client, test_server.port, "/")
        payload = response.json()

        assert response.status == 200
        assert payload["message"] == "Hello from the Python server!"
        assert ISO_8601.match(payload["timestamp"])
        assert elapsed < 0.5

    def test_slow(self, server_factory, client):
        srv = server_factory(slow_duration_ms=400)
        response, elapsed = timed(client, srv.port, "/slow")
        payload = response.json()

        assert response.status == 200
        assert payload["message"] == "Long operation completed!"
        assert payload["note"] == "This request blocked the event loop for 0.4 seconds!"
        assert ISO_8601.match(payload["timestamp"])
        assert elapsed >= 0.4

    @pytest.mark.parametrize("path", ["/nope", "/slow/", "/?x=1", "/SLOW"])
    def test_not_found(self, test_server, client, path):
        response = client(test_server.port, path)

        assert response.status == 404
        assert response.json()["message"] == "Page not found"

    def test_method_not_part_of_routing(self, test_server, client):
        response = client(test_server.port, "/", method="POST", extra_headers=[("Content-Length", "0")])
        assert response.status == 200

    @pytest.mark.parametrize("path", ["/", "/nope"])
    def test_default_headers(self, test_server, client, path):
        response = client(test_server.port, path)

        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["content-type"] == "application/json; charset=utf-8"

    def test_pretty_printed_body(self, test_server, client):
        body = client(test_server.port, "/").body.decode("utf-8")
        assert body.startswith('{\n  "message": ')

    def test_root_is_idempotent(self, test_server, client):
        first = client(test_server.port, "/").json()
        second = client(test_server.port, "/").json()

        assert first["message"] == second["message"]


class TestStarvation:

    def test_fast_request_waits_behind_slow_one(self, server_factory, client):
        """GET / sent 100 ms into a 1 s /slow is answered only after /slow."""
        srv = server_factory(slow_duration_ms=1000)
        finished = {}

        def call(path):
            response = client(srv.port, path)
            finished[path] = response.status

        slow_thread = threading.Thread(target=call, args=("/slow",))
        slow_thread.start()
        time.sleep(0.1)

        start = time.monotonic()
        call("/")
        fast_elapsed = time.monotonic() - start
        slow_thread.join(timeout=15)

        assert finished["/slow"] == 200
        assert finished["/"] == 200
        assert fast_elapsed >= 0.8


class TestErrors:

    def test_malformed_request_is_400(self, test_server, client):
        response = client(test_server.port, raw=b"NONSENSE\r\n\r\n")

        assert response.status == 400
        assert response.json()["status"] == "error"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_handler_failure_is_500(self, config, server_factory, client):
        dispatcher = Dispatcher(config)

        def boom(request, config):
            raise RuntimeError("kaboom")

        dispatcher.add_route("/boom", boom)
        srv = server_factory(dispatcher=dispatcher)

        response = client(srv.port, "/boom")
        assert response.status == 500
        assert response.json()["error"] == "Internal server error"

        # Still serving
        assert client(srv.port, "/").status == 200

    @pytest.mark.parametrize("reply", [
        lambda request, config: None,
        lambda request, config: json_response(HTTPStatus.OK, {"message": "hi"}, headers={"X-Note": "✓"}),
    ], ids=["no-response", "non-latin-1-header"])
    def test_unusable_response_is_500(self, config, server_factory, client, reply):
        dispatcher = Dispatcher(config)
        dispatcher.add_route("/broken", reply)
        srv = server_factory(dispatcher=dispatcher)

        response = client(srv.port, "/broken")
        assert response.status == 500
        assert response.json()["error"] == "Internal server error"

        assert srv.server.state == ServerState.LISTENING
        assert client(srv.port, "/").status == 200

    def test_port_in_use(self, config, test_server):
        other = HTTPServer(replace(config, port=test_server.port))

        with pytest.raises(ServerStartError):
            other.start()
        assert other.state == ServerState.STOPPED
        assert other.wait_for_shutdown(0) is True


class TestKeepAlive:

    def test_two_requests_on_one_connection(self, test_server):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5) as sock:
            sock.sendall(b"GET / HTTP/1.1\r\nHost: x\r\n\r\nGET /nope HTTP/1.1\r\nConnection: close\r\n\r\n")

            data = b""
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                data += chunk

        assert data.count(b"HTTP/1.1 ") == 2
        assert data.index(b"HTTP/1.1 200 OK") < data.index(b"HTTP/1.1 404 Not Found")


class TestLifecycle:

    def test_states(self, config):
        server = HTTPServer(config)
        assert server.state == ServerState.STOPPED
        assert server.port is None

        server.start()
        assert server.state == ServerState.LISTENING
        assert server.port > 0

        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()

        server.request_shutdown()
        assert server.wait_for_shutdown(10)
        thread.join(10)
        assert server.state == ServerState.STOPPED

    def test_one_shot(self, config):
        server = HTTPServer(config)
        server.start()
        server.stop()

        with pytest.raises(RuntimeError):
            server.start()

    def test_request_shutdown_is_idempotent(self, test_server):
        test_server.server.request_shutdown("first")
        test_server.server.request_shutdown("second")
        assert test_server.server.wait_for_shutdown(10)

    def test_stop_logs_success(self, config, caplog):
        server = HTTPServer(config)
        server.start()

        with caplog.at_level(logging.INFO, logger="slowserver"):
            server.stop()
            server.stop()

        assert caplog.messages.count("Server stopped successfully") == 1

    def test_shutdown_during_slow_completes_request(self, server_factory, client):
        """A shutdown requested mid-spin does not cut the /slow response."""
        srv = server_factory(slow_duration_ms=600)
        result = {}

        def call():
            result["response"] = client(srv.port, "/slow")

        thread = threading.Thread(target=call)
        thread.start()
        time.sleep(0.2)

        srv.server.request_shutdown("test shutdown")
        thread.join(timeout=15)

        assert result["response"].status == 200
        assert result["response"].json()["message"] == "Long operation completed!"
        assert srv.server.wait_for_shutdown(10)

    def test_refuses_connections_after_stop(self, server_factory):
        srv = server_factory()
        port = srv.port
        srv.stop()

        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1.0)
