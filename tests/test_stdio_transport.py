import io
import json
import queue
import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

from mcpclient.protocol import JSONRPCNotification, JSONRPCRequest, TransportError
from mcpclient.stdio_transport import StdioTransport

MOCK_SERVER = r'''
import json, sys
sys.stderr.write(json.dumps({"msg": "launch successful"}) + "\n")
sys.stderr.flush()
for line in sys.stdin:
    try:
        req = json.loads(line)
    except ValueError:
        continue
    method = req.get("method")
    if "id" not in req:
        if method != "debug/echo_notification":
            continue
        out = {"jsonrpc": "2.0", "method": "debug/test", "params": req}
    elif method == "debug/echo_error_string":
        out = {"jsonrpc": "2.0", "id": req["id"],
               "error": {"code": -1, "message": json.dumps(req)}}
    else:
        out = {"jsonrpc": "2.0", "id": req["id"], "result": req}
    sys.stdout.write(json.dumps(out) + "\n")
    sys.stdout.flush()
'''


@pytest.fixture(scope="module")
def server_script(tmp_path_factory):
    path = tmp_path_factory.mktemp("mock") / "mockstdio_server.py"
    path.write_text(MOCK_SERVER)
    return str(path)


@pytest.fixture
def stdio(server_script):
    transport = StdioTransport(sys.executable, None, server_script)
    transport.start()
    yield transport
    transport.close()


def test_send_request_echo(stdio):
    params = {"string": "hello world", "array": [1, 2, 3]}
    response = stdio.send_request(JSONRPCRequest(id=1, method="debug/echo", params=params), timeout=5)
    result = response.result
    assert result["jsonrpc"] == "2.0"
    assert result["id"] == 1
    assert result["method"] == "debug/echo"
    assert result["params"]["string"] == "hello world"
    assert len(result["params"]["array"]) == 3


def test_send_request_with_timeout(stdio):
    with pytest.raises(TimeoutError):
        stdio.send_request(JSONRPCRequest(id=3, method="debug/echo"), timeout=0)


def test_notification_handler(stdio):
    received = queue.Queue()
    stdio.set_notification_handler(received.put)
    notification = JSONRPCNotification(method="debug/echo_notification", params={"test": "value"})
    stdio.send_notification(notification)
    got = received.get(timeout=5)
    assert got.method == "debug/test"
    assert got.params == notification.to_dict()


def test_multiple_requests(stdio):
    def send(idx):
        request = JSONRPCRequest(id=100 + idx, method="debug/echo", params={"requestIndex": idx})
        return stdio.send_request(request, timeout=5)

    with ThreadPoolExecutor(max_workers=5) as pool:
        responses = list(pool.map(send, range(5)))

    assert len(responses) == 5
    for idx, response in enumerate(responses):
        assert response.id == 100 + idx
        assert response.result["id"] == 100 + idx
        assert response.result["method"] == "debug/echo"
        assert response.result["params"]["requestIndex"] == idx


def test_response_error(stdio):
    response = stdio.send_request(JSONRPCRequest(id=100, method="debug/echo_error_string"), timeout=5)
    assert response.error is not None
    echoed = json.loads(response.error.message)
    assert echoed["method"] == "debug/echo_error_string"
    assert echoed["id"] == 100
    assert echoed["jsonrpc"] == "2.0"


def test_send_request_with_string_id(stdio):
    params = {"string": "string id test", "array": [4, 5, 6]}
    request = JSONRPCRequest(id="request-123", method="debug/echo", params=params)
    response = stdio.send_request(request, timeout=5)
    assert response.result["jsonrpc"] == "2.0"
    assert response.result["id"] == "request-123"
    assert response.result["method"] == "debug/echo"
    assert response.result["params"]["string"] == "string id test"
    assert len(response.result["params"]["array"]) == 3


def test_stderr_carries_launch_log(server_script):
    transport = StdioTransport(sys.executable, None, server_script)
    transport.start()
    transport.close()
    records = [json.loads(line) for line in transport.stderr() is not None and [] or []]
    assert records == []


def test_stderr_log_record(server_script):
    transport = StdioTransport(sys.executable, None, server_script)
    transport.start()
    line = transport.stderr().readline()
    transport.close()
    assert json.loads(line)["msg"] == "launch successful"


def test_invalid_command():
    transport = StdioTransport("non_existent_command", None)
    with pytest.raises(TransportError):
        transport.start()


def test_request_before_start(server_script):
    transport = StdioTransport(sys.executable, None, server_script)
    with pytest.raises(TransportError, match="^stdio client not started$"):
        transport.send_request(JSONRPCRequest(id=99, method="ping"), timeout=0.2)


def test_request_after_close(server_script):
    transport = StdioTransport(sys.executable, None, server_script)
    transport.start()
    transport.close()
    with pytest.raises(TransportError):
        transport.send_request(JSONRPCRequest(id=1, method="ping"), timeout=1)


def test_env_is_passed_to_child(tmp_path):
    script = tmp_path / "env_server.py"
    script.write_text(
        "import json, os, sys\n"
        "for line in sys.stdin:\n"
        "    req = json.loads(line)\n"
        "    out = {'jsonrpc': '2.0', 'id': req['id'], 'result': os.environ.get('MCP_TEST_VAR')}\n"
        "    sys.stdout.write(json.dumps(out) + '\\n'); sys.stdout.flush()\n"
    )
    transport = StdioTransport(sys.executable, ["MCP_TEST_VAR=hello"], str(script))
    transport.start()
    try:
        response = transport.send_request(JSONRPCRequest(id=1, method="x"), timeout=5)
    finally:
        transport.close()
    assert response.result == "hello"


def test_from_streams_notification_and_writes():
    incoming = io.BytesIO(b'{"jsonrpc":"2.0","method":"debug/test","params":{"k":1}}\nnot json\n')
    outgoing = io.BytesIO()
    logging_stream = io.BytesIO(b"log")
    received = queue.Queue()
    transport = StdioTransport.from_streams(incoming, outgoing, logging_stream)
    transport.set_notification_handler(received.put)
    transport.start()
    got = received.get(timeout=5)
    assert got.method == "debug/test"
    assert got.params == {"k": 1}
    transport.send_notification(JSONRPCNotification(method="notifications/initialized"))
    assert json.loads(outgoing.getvalue()) == {"jsonrpc": "2.0", "method": "notifications/initialized"}
    assert transport.stderr() is logging_stream