import pytest
import asyncio
import socket
import ssl
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import aiohttp
import trustme
from aiohttp import web
from aiohttp import test_utils

from http_client import ErrorKind, HttpClient, classify_exception, describe_exception
from metrics import Failure, Success
from request import RequestTemplate


def make_app() -> web.Application:
    async def hello(request):
        return web.Response(text="hello")

    async def echo(request):
        body = await request.read()
        return web.Response(body=body, headers={
            "X-Method": request.method,
            "X-Echo-Header": request.headers.get("X-Test", ""),
        })

    async def unavailable(request):
        return web.Response(status=503, text="down")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_get("/hello", hello)
    app.router.add_route("*", "/echo", echo)
    app.router.add_get("/unavailable", unavailable)
    app.router.add_get("/slow", slow)
    return app


def unused_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def self_signed_server_context() -> ssl.SSLContext:
    ca = trustme.CA()
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ca.issue_cert("127.0.0.1", "localhost").configure_cert(context)
    return context


def with_server(scenario, server_ssl=None, **client_kwargs):
    async def runner():
        server = test_utils.TestServer(make_app())
        await server.start_server(ssl=server_ssl)
        try:
            async with HttpClient(**client_kwargs) as client:
                return await scenario(server, client)
        finally:
            await server.close()
    return asyncio.run(runner())


class TestHttpClient:
    def test_success_reports_status_and_size(self):
        async def scenario(server, client):
            return await client.execute(RequestTemplate(str(server.make_url("/hello")), "GET"))

        result = with_server(scenario)
        assert result == Success(status_code=200, response_size=5)

    def test_http_error_status_is_still_success(self):
        async def scenario(server, client):
            return await client.execute(RequestTemplate(str(server.make_url("/unavailable")), "GET"))

        result = with_server(scenario)
        assert isinstance(result, Success)
        assert result.status_code == 503

    def test_sends_method_headers_and_body(self):
        async def scenario(server, client):
            template = RequestTemplate(str(server.make_url("/echo")), "PUT",
                                       headers=(("X-Test", "abc"),), body=b"0123456789")
            return await client.execute(template)

        result = with_server(scenario)
        assert result == Success(status_code=200, response_size=10)

    def test_template_is_reusable_concurrently(self):
        async def scenario(server, client):
            template = RequestTemplate(str(server.make_url("/echo")), "POST", body=b"xyz")
            return await asyncio.gather(*(client.execute(template) for _ in range(10)))

        results = with_server(scenario)
        assert results == [Success(200, 3)] * 10

    def test_timeout_is_a_failure(self):
        async def scenario(server, client):
            return await client.execute(RequestTemplate(str(server.make_url("/slow")), "GET"))

        result = with_server(scenario, timeout_s=0.2)
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.TIMEOUT

    def test_connection_refused_is_a_failure(self):
        async def scenario():
            async with HttpClient(timeout_s=5) as client:
                return await client.execute(RequestTemplate(f"http://127.0.0.1:{unused_port()}/", "GET"))

        result = asyncio.run(scenario())
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.CONNECT_FAILED
        assert result.message

    def test_execute_requires_open_client(self):
        client = HttpClient()
        with pytest.raises(RuntimeError):
            asyncio.run(client.execute(RequestTemplate("http://127.0.0.1/", "GET")))

    def test_untrusted_certificate_is_a_tls_failure(self):
        async def scenario(server, client):
            assert str(server.make_url("/")).startswith("https://")
            return await client.execute(RequestTemplate(str(server.make_url("/hello")), "GET"))

        result = with_server(scenario, server_ssl=self_signed_server_context(), insecure_tls=False)
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.TLS_ERROR
        assert "CERTIFICATE_VERIFY_FAILED" in result.message

    def test_insecure_tls_accepts_untrusted_certificate(self):
        async def scenario(server, client):
            return await client.execute(RequestTemplate(str(server.make_url("/hello")), "GET"))

        result = with_server(scenario, server_ssl=self_signed_server_context(), insecure_tls=True)
        assert result == Success(status_code=200, response_size=5)

    def test_close_is_idempotent(self):
        async def scenario():
            client = HttpClient(insecure_tls=True)
            await client.open()
            await client.close()
            await client.close()

        asyncio.run(scenario())


class TestClassifyException:
    def test_timeouts(self):
        assert classify_exception(asyncio.TimeoutError()) is ErrorKind.TIMEOUT
        assert classify_exception(aiohttp.ServerTimeoutError()) is ErrorKind.TIMEOUT

    def test_tls(self):
        assert classify_exception(ssl.SSLError("bad handshake")) is ErrorKind.TLS_ERROR

    def test_connect(self):
        assert classify_exception(ConnectionRefusedError()) is ErrorKind.CONNECT_FAILED

    def test_io(self):
        assert classify_exception(aiohttp.ServerDisconnectedError()) is ErrorKind.IO
        assert classify_exception(aiohttp.ClientPayloadError("truncated")) is ErrorKind.IO
        assert classify_exception(ConnectionResetError()) is ErrorKind.IO

    def test_other(self):
        assert classify_exception(aiohttp.InvalidURL("nope")) is ErrorKind.OTHER
        assert classify_exception(ValueError("weird")) is ErrorKind.OTHER

    def test_describe(self):
        assert describe_exception(ValueError("weird")) == "ValueError: weird"
        assert describe_exception(asyncio.TimeoutError()) == "TimeoutError"
