"""CLI tests driven through typer's CliRunner with the transport faked out."""

from __future__ import annotations

import json
from unittest.mock import patch

from typer.testing import CliRunner

from CurlFetch.cli import app
from CurlFetch.client import CurlClient
from CurlFetch.errors import TransportError
from CurlFetch.network.capabilities import TransportCapabilities
from tests.fixtures.fakes import JSON_OK, FakeInvoker, http_frame

runner = CliRunner()
CAPS = TransportCapabilities(version=(8, 5, 0), http2=True)


def client_factory(invoker):
    return lambda settings: CurlClient(settings, invoker=invoker, capabilities=CAPS)


class TestFetchCommand:
    """``curlfetch fetch``"""

    def test_body_written_to_stdout(self):
        invoker = FakeInvoker()
        with patch("CurlFetch.cli.CurlClient", client_factory(invoker)):
            result = runner.invoke(
                app,
                ["fetch", "https://example.com/", "-H", "X-A: 1", "-X", "post", "-d", "a=1"],
            )
        assert result.exit_code == 0, result.output
        assert '{"ok": true}' in result.stdout
        argv = invoker.calls[0]
        assert "X-A: 1" in argv
        assert argv[-3:] == ["-X", "POST", "https://example.com/"]
        assert argv[argv.index("--data-binary") + 1] == "@-"
        assert invoker.inputs[0] == b"a=1"

    def test_include_prints_head(self):
        invoker = FakeInvoker([http_frame(404, [("Content-Type", "text/plain")], b"nope")])
        with patch("CurlFetch.cli.CurlClient", client_factory(invoker)):
            result = runner.invoke(app, ["fetch", "https://example.com/", "--include"])
        assert result.exit_code == 0, result.output
        assert "HTTP 404" in result.stdout
        assert "content-type: text/plain" in result.stdout.lower()
        assert result.stdout.rstrip().endswith("nope")

    def test_json_summary(self):
        invoker = FakeInvoker()
        with patch("CurlFetch.cli.CurlClient", client_factory(invoker)):
            result = runner.invoke(app, ["fetch", "https://example.com/", "--json"])
        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary["status"] == 200
        assert summary["ok"] is True
        assert summary["response"] == {"ok": True}
        assert summary["redirects"] == []

    def test_no_follow_and_insecure(self):
        invoker = FakeInvoker()
        with patch("CurlFetch.cli.CurlClient", client_factory(invoker)):
            result = runner.invoke(
                app, ["fetch", "https://example.com/", "--no-follow", "-k", "--http", "1.1"]
            )
        assert result.exit_code == 0, result.output
        argv = invoker.calls[0]
        assert "--location" not in argv
        assert "--insecure" in argv
        assert "--http1.1" in argv

    def test_stream(self):
        invoker = FakeInvoker(stream_chunks=[JSON_OK])
        with patch("CurlFetch.cli.CurlClient", client_factory(invoker)):
            result = runner.invoke(app, ["fetch", "https://example.com/", "--stream"])
        assert result.exit_code == 0, result.output
        assert '{"ok": true}' in result.stdout
        assert invoker.streams[0].chunks == []

    def test_transport_failure_exits_nonzero(self):
        invoker = FakeInvoker(error=TransportError("Could not resolve host", exit_code=6))
        with patch("CurlFetch.cli.CurlClient", client_factory(invoker)):
            result = runner.invoke(app, ["fetch", "https://nowhere.invalid/"])
        assert result.exit_code == 1
        assert "ERR_CURL_FAILED" in result.output

    def test_malformed_header_is_usage_error(self):
        with patch("CurlFetch.cli.CurlClient", client_factory(FakeInvoker())):
            result = runner.invoke(app, ["fetch", "https://example.com/", "-H", "no-colon"])
        assert result.exit_code == 2


class TestCapabilitiesCommand:
    """``curlfetch capabilities``"""

    def test_raw_json(self):
        caps = TransportCapabilities.full((8, 5, 0))
        with patch("CurlFetch.cli.probe_capabilities", return_value=caps):
            result = runner.invoke(app, ["capabilities", "--raw"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["version"] == "8.5.0"
        assert data["http3"] is True

    def test_table(self):
        caps = TransportCapabilities.full((8, 5, 0))
        with patch("CurlFetch.cli.probe_capabilities", return_value=caps):
            result = runner.invoke(app, ["capabilities", "--binary", "curl"])
        assert result.exit_code == 0, result.output
        assert "Transport Capabilities" in result.stdout
        assert "8.5.0" in result.stdout

    def test_probe_failure(self):
        with patch("CurlFetch.cli.probe_capabilities", return_value=TransportCapabilities()):
            result = runner.invoke(app, ["capabilities", "--binary", "missing-curl"])
        assert result.exit_code == 1
