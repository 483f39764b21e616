import httpx
import pytest
from inline_snapshot import snapshot

from proxycache import (
    AsyncFileStorage,
    AsyncOriginClient,
    CacheEntry,
    ConnectionHandler,
    Headers,
    StoreError,
    TunnelRelay,
    generate_key,
    serialize_response,
)
from proxycache._packing import pack

PRODUCT = b'{"id": 1, "title": "Essence Mascara Lash Princess"}'


class Origin:
    def __init__(self, status_code: int = 200, content: bytes = PRODUCT) -> None:
        self.status_code = status_code
        self.content = content
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code,
            headers={"Content-Type": "application/json", "Connection": "keep-alive"},
            content=self.content,
        )


def make_handler(tmp_path, origin_app, **kwargs) -> ConnectionHandler:
    kwargs.setdefault("origin", "http://dummyjson.com")
    return ConnectionHandler(
        AsyncFileStorage(base_path=tmp_path),
        AsyncOriginClient(client=httpx.AsyncClient(transport=httpx.MockTransport(origin_app))),
        **kwargs,
    )


def test_serialize_response():
    entry = CacheEntry(
        status_line="HTTP/1.1 200 OK",
        headers=Headers(
            [
                ("Content-Type", "text/plain"),
                ("Set-Cookie", "a=1"),
                ("Set-Cookie", "b=2"),
                ("Connection", "keep-alive"),
                ("x-cache", "stale"),
            ]
        ),
        body=b"body",
    )

    assert serialize_response(entry, from_cache=True) == snapshot(
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/plain\r\n"
        b"Set-Cookie: a=1\r\n"
        b"Set-Cookie: b=2\r\n"
        b"X-CACHE: HIT\r\n"
        b"Connection: close\r\n"
        b"\r\n"
        b"body"
    )


def test_serialize_response_without_body():
    entry = CacheEntry(status_line="HTTP/1.1 204 No Content")

    assert serialize_response(entry, from_cache=False) == (
        b"HTTP/1.1 204 No Content\r\nX-CACHE: MISS\r\nConnection: close\r\n\r\n"
    )


@pytest.mark.anyio
async def test_miss_then_hit(tmp_path, fake_stream, caplog: pytest.LogCaptureFixture):
    origin = Origin()
    handler = make_handler(tmp_path, origin)
    raw_request = b"GET /products/1 HTTP/1.1\r\nHost: dummyjson.com\r\n\r\n"

    first = fake_stream([raw_request])
    second = fake_stream([raw_request])
    with caplog.at_level("INFO", logger="proxycache"):
        await handler(first)
        await handler(second)

    assert caplog.messages == snapshot(
        [
            "GET /products/1 X-CACHE: MISS",
            "GET /products/1 X-CACHE: HIT",
        ]
    )
    assert len(origin.requests) == 1
    assert str(origin.requests[0].url) == "http://dummyjson.com/products/1"

    first_head, first_body = bytes(first.sent).split(b"\r\n\r\n", 1)
    second_head, second_body = bytes(second.sent).split(b"\r\n\r\n", 1)
    assert first_head.split(b"\r\n") == [
        b"HTTP/1.1 200 OK",
        b"Content-Type: application/json",
        b"Content-Length: 51",
        b"X-CACHE: MISS",
        b"Connection: close",
    ]
    assert second_head == first_head.replace(b"X-CACHE: MISS", b"X-CACHE: HIT")
    assert first_body == second_body == PRODUCT

    key = generate_key("GET", "dummyjson.com", "/products/1")
    assert [path.name for path in tmp_path.iterdir() if path.name != ".gitignore"] == [key]

    assert first.eof_sent and first.closed
    assert second.eof_sent and second.closed


@pytest.mark.anyio
async def test_miss_stores_exactly_one_entry(tmp_path, fake_stream):
    origin = Origin()
    handler = make_handler(tmp_path, origin)

    await handler(fake_stream([b"GET /products/2 HTTP/1.1\r\nHost: dummyjson.com\r\n\r\n"]))

    stored_entry = await AsyncFileStorage(base_path=tmp_path).get(generate_key("GET", "dummyjson.com", "/products/2"))
    assert stored_entry is not None
    assert stored_entry.status_line == "HTTP/1.1 200 OK"
    assert stored_entry.body == PRODUCT
    assert len([path for path in tmp_path.iterdir() if path.name != ".gitignore"]) == 1


@pytest.mark.anyio
async def test_hit_never_calls_origin(tmp_path, fake_stream):
    origin = Origin()
    handler = make_handler(tmp_path, origin)
    key = generate_key("GET", "dummyjson.com", "/cached")
    await AsyncFileStorage(base_path=tmp_path).put(
        key, CacheEntry(status_line="HTTP/1.1 200 OK", headers=Headers({"Content-Length": "6"}), body=b"cached")
    )

    client = fake_stream([b"GET /cached HTTP/1.1\r\n\r\n"])
    await handler(client)

    assert origin.requests == []
    assert bytes(client.sent) == (
        b"HTTP/1.1 200 OK\r\nContent-Length: 6\r\nX-CACHE: HIT\r\nConnection: close\r\n\r\ncached"
    )


@pytest.mark.anyio
async def test_fixed_origin_ignores_client_host(tmp_path, fake_stream):
    origin = Origin()
    handler = make_handler(tmp_path, origin)

    await handler(fake_stream([b"GET /a HTTP/1.1\r\nHost: localhost:3000\r\n\r\n"]))
    await handler(fake_stream([b"GET /a HTTP/1.1\r\nHost: somewhere.else\r\n\r\n"]))

    assert len(origin.requests) == 1
    assert origin.requests[0].headers["host"] == "dummyjson.com"


@pytest.mark.anyio
async def test_full_proxy_mode_honors_client_host(tmp_path, fake_stream):
    origin = Origin()
    handler = make_handler(tmp_path, origin, origin=None, full_proxy_mode=True)

    await handler(fake_stream([b"GET /a HTTP/1.1\r\nHost: one.example\r\n\r\n"]))
    await handler(fake_stream([b"GET /a HTTP/1.1\r\nHost: two.example\r\n\r\n"]))

    assert [str(request.url) for request in origin.requests] == ["http://one.example/a", "http://two.example/a"]


@pytest.mark.anyio
async def test_fixed_origin_ignores_absolute_target_host(tmp_path, fake_stream):
    origin = Origin()
    handler = make_handler(tmp_path, origin)

    await handler(fake_stream([b"GET http://evil.example/x HTTP/1.1\r\nHost: evil.example\r\n\r\n"]))
    client = fake_stream([b"GET /x HTTP/1.1\r\n\r\n"])
    await handler(client)

    assert [str(request.url) for request in origin.requests] == ["http://dummyjson.com/x"]
    assert b"X-CACHE: HIT" in bytes(client.sent)
    key = generate_key("GET", "dummyjson.com", "/x")
    assert [path.name for path in tmp_path.iterdir() if path.name != ".gitignore"] == [key]


@pytest.mark.anyio
async def test_full_proxy_mode_honors_absolute_target(tmp_path, fake_stream):
    origin = Origin()
    handler = make_handler(tmp_path, origin, origin=None, full_proxy_mode=True)

    await handler(fake_stream([b"GET http://one.example/a HTTP/1.1\r\nHost: one.example\r\n\r\n"]))

    assert [str(request.url) for request in origin.requests] == ["http://one.example/a"]


@pytest.mark.anyio
async def test_latin1_header_reaches_origin(tmp_path, fake_stream):
    origin = Origin()
    client = fake_stream([b"GET /a HTTP/1.1\r\nX-Name: caf\xe9\r\n\r\n"])

    await make_handler(tmp_path, origin)(client)

    (forwarded,) = origin.requests
    assert (b"X-Name", b"caf\xe9") in forwarded.headers.raw
    assert bytes(client.sent).startswith(b"HTTP/1.1 200 OK\r\n")


@pytest.mark.anyio
async def test_post_body_is_forwarded(tmp_path, fake_stream):
    origin = Origin(status_code=201, content=b"created")
    handler = make_handler(tmp_path, origin)
    client = fake_stream([b"POST /x HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"])

    await handler(client)

    assert origin.requests[0].content == b"hello"
    assert bytes(client.sent).startswith(b"HTTP/1.1 201 Created\r\n")


@pytest.mark.anyio
async def test_error_responses_are_cached(tmp_path, fake_stream):
    origin = Origin(status_code=404, content=b"not found")
    handler = make_handler(tmp_path, origin)

    await handler(fake_stream([b"GET /missing HTTP/1.1\r\n\r\n"]))
    client = fake_stream([b"GET /missing HTTP/1.1\r\n\r\n"])
    await handler(client)

    assert len(origin.requests) == 1
    assert bytes(client.sent).startswith(b"HTTP/1.1 404 Not Found\r\n")
    assert bytes(client.sent).endswith(b"X-CACHE: HIT\r\nConnection: close\r\n\r\nnot found")


@pytest.mark.anyio
async def test_empty_request_closes_without_response(tmp_path, fake_stream):
    origin = Origin()
    client = fake_stream()

    await make_handler(tmp_path, origin)(client)

    assert bytes(client.sent) == b""
    assert client.closed
    assert origin.requests == []


@pytest.mark.anyio
async def test_malformed_request_closes_without_response(tmp_path, fake_stream, caplog):
    client = fake_stream([b"NONSENSE\r\n\r\n"])

    with caplog.at_level("WARNING", logger="proxycache"):
        await make_handler(tmp_path, Origin())(client)

    assert bytes(client.sent) == b""
    assert client.closed
    assert caplog.messages == ["Closing connection: Malformed request line: 'NONSENSE'"]


@pytest.mark.anyio
async def test_missing_host_closes_without_response(tmp_path, fake_stream, caplog):
    origin = Origin()
    client = fake_stream([b"GET / HTTP/1.1\r\nAccept: */*\r\n\r\n"])

    with caplog.at_level("WARNING", logger="proxycache"):
        await make_handler(tmp_path, origin, origin=None, full_proxy_mode=True)(client)

    assert bytes(client.sent) == b""
    assert client.closed
    assert origin.requests == []
    assert caplog.messages == ["Closing connection: Host header not found"]


@pytest.mark.anyio
async def test_origin_failure_closes_without_response(tmp_path, fake_stream):
    def failing_origin(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client = fake_stream([b"GET / HTTP/1.1\r\n\r\n"])

    await make_handler(tmp_path, failing_origin)(client)

    assert bytes(client.sent) == b""
    assert client.closed
    assert [path.name for path in tmp_path.iterdir()] == []


@pytest.mark.anyio
async def test_corrupt_entry_closes_without_response(tmp_path, fake_stream):
    origin = Origin()
    key = generate_key("GET", "dummyjson.com", "/")
    (tmp_path / key).write_bytes(pack(CacheEntry(status_line="HTTP/1.1 200 OK", body=b"x" * 100))[:20])
    client = fake_stream([b"GET / HTTP/1.1\r\n\r\n"])

    await make_handler(tmp_path, origin)(client)

    assert bytes(client.sent) == b""
    assert origin.requests == []


@pytest.mark.anyio
async def test_unexpected_error_is_contained(tmp_path, fake_stream, caplog):
    class BrokenStorage(AsyncFileStorage):
        async def get(self, key):
            raise RuntimeError("boom")

    handler = ConnectionHandler(
        BrokenStorage(base_path=tmp_path),
        AsyncOriginClient(client=httpx.AsyncClient(transport=httpx.MockTransport(Origin()))),
        origin="http://dummyjson.com",
    )
    client = fake_stream([b"GET / HTTP/1.1\r\n\r\n"])

    with caplog.at_level("ERROR", logger="proxycache"):
        await handler(client)

    assert bytes(client.sent) == b""
    assert client.closed
    assert caplog.messages == ["Unexpected error while handling a connection"]


@pytest.mark.anyio
async def test_store_failure_is_reported(tmp_path, fake_stream, caplog):
    class ReadOnlyStorage(AsyncFileStorage):
        async def put(self, key, entry):
            raise StoreError(f"Could not write cache entry {key}")

    origin = Origin()
    handler = ConnectionHandler(
        ReadOnlyStorage(base_path=tmp_path),
        AsyncOriginClient(client=httpx.AsyncClient(transport=httpx.MockTransport(origin))),
        origin="http://dummyjson.com",
    )
    client = fake_stream([b"GET / HTTP/1.1\r\n\r\n"])

    await handler(client)

    assert len(origin.requests) == 1
    assert bytes(client.sent) == b""


@pytest.mark.anyio
async def test_connect_goes_to_tunnel(tmp_path, fake_stream):
    remote = fake_stream([b"server bytes"])
    calls = []

    async def connector(host, port):
        calls.append((host, port))
        return remote

    origin = Origin()
    handler = make_handler(tmp_path, origin, tunnel=TunnelRelay(connector=connector))
    client = fake_stream([b"CONNECT example.com:8443 HTTP/1.1\r\nHost: example.com:8443\r\n\r\n", b"client bytes"])

    await handler(client)

    assert calls == [("example.com", 8443)]
    assert bytes(remote.sent) == b"client bytes"
    assert bytes(client.sent) == (
        b"HTTP/1.1 200 Connection Established\r\nProxy-Agent: proxycache\r\n\r\nserver bytes"
    )
    assert client.closed
    assert remote.closed
    assert origin.requests == []
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_connect_to_unreachable_target(tmp_path, fake_stream):
    async def refuse(host, port):
        raise ConnectionRefusedError

    client = fake_stream([b"CONNECT example.com HTTP/1.1\r\n\r\n"])

    await make_handler(tmp_path, Origin(), tunnel=TunnelRelay(connector=refuse))(client)

    assert bytes(client.sent) == b""
    assert client.closed
