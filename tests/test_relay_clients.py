"""
Tests for the Listmonk and Mautic HTTP clients.

Outbound HTTP is served by httpx.MockTransport so request bodies and
paths can be asserted without a network.
"""

import base64
import json
from datetime import datetime, timezone

import httpx
import pytest

from src.errors import RelayFailure, RelayUnavailable
from src.integrations.http import RelayHTTPClient, basic_auth_header
from src.integrations.listmonk import (
    ListmonkClient,
    build_campaign_payload,
    format_send_at,
)
from src.integrations.mautic import MauticClient, format_publish_up
from src.types.email import RelayEmail


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def json_body(self, index: int = 0):
        return json.loads(self.requests[index].content)


def relay_email(send_at=None) -> RelayEmail:
    return RelayEmail(
        name="Ghost: Hi",
        subject="Hi",
        html_body="<p>b</p>",
        target_list_ids={3, 1},
        send_at=send_at,
    )


class TestRelayHTTPClient:
    def test_basic_auth_header(self):
        header = basic_auth_header("user", "pass")
        assert header == "Basic " + base64.b64encode(b"user:pass").decode()

    @pytest.mark.asyncio
    async def test_sends_auth_and_json_headers(self):
        recorder = Recorder(httpx.Response(200, json={"ok": True}))
        client = RelayHTTPClient("svc", "https://svc.test/", "u", "p", transport=httpx.MockTransport(recorder))

        assert await client.get("/ping") == {"ok": True}
        request = recorder.requests[0]
        assert str(request.url) == "https://svc.test/ping"
        assert request.headers["Authorization"] == basic_auth_header("u", "p")
        assert request.headers["User-Agent"] == "SignalRelay/1.0"
        await client.close()

    @pytest.mark.asyncio
    async def test_non_2xx_raises_relay_failure(self):
        recorder = Recorder(httpx.Response(422, text="bad list"))
        client = RelayHTTPClient("svc", "https://svc.test", "u", "p", transport=httpx.MockTransport(recorder))

        with pytest.raises(RelayFailure) as exc_info:
            await client.post("/things", json={})
        assert exc_info.value.upstream_status == 422
        assert exc_info.value.body == "bad list"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error_raises_relay_unavailable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = RelayHTTPClient("svc", "https://svc.test", "u", "p", transport=httpx.MockTransport(refuse))
        with pytest.raises(RelayUnavailable) as exc_info:
            await client.get("/ping")
        assert exc_info.value.service == "svc"

    @pytest.mark.asyncio
    async def test_empty_body_decodes_to_empty_dict(self):
        recorder = Recorder(httpx.Response(204))
        client = RelayHTTPClient("svc", "https://svc.test", "u", "p", transport=httpx.MockTransport(recorder))
        assert await client.put("/x") == {}

    @pytest.mark.asyncio
    async def test_non_json_body_raises_relay_failure(self):
        recorder = Recorder(httpx.Response(200, text="<html>login</html>"))
        client = RelayHTTPClient("svc", "https://svc.test", "u", "p", transport=httpx.MockTransport(recorder))
        with pytest.raises(RelayFailure):
            await client.get("/x")


class TestListmonkClient:
    def test_format_send_at_is_utc_without_fraction(self):
        dt = datetime(2024, 1, 15, 10, 30, 0, 999, tzinfo=timezone.utc)
        assert format_send_at(dt) == "2024-01-15T10:30:00Z"

    def test_campaign_payload_without_send_at(self):
        payload = build_campaign_payload(relay_email())
        assert payload == {
            "name": "Ghost: Hi",
            "subject": "Hi",
            "lists": [1, 3],
            "type": "regular",
            "content_type": "html",
            "body": "<p>b</p>",
        }

    def test_campaign_payload_with_send_at(self):
        send_at = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert build_campaign_payload(relay_email(send_at))["send_at"] == "2024-01-15T10:30:00Z"

    @pytest.mark.asyncio
    async def test_create_campaign_returns_id(self):
        recorder = Recorder(httpx.Response(200, json={"data": {"id": 77}}))
        client = ListmonkClient("https://lm.test", "api", "token", transport=httpx.MockTransport(recorder))

        assert await client.create_campaign(relay_email()) == 77
        assert recorder.requests[0].method == "POST"
        assert recorder.requests[0].url.path == "/api/campaigns"
        assert recorder.json_body()["subject"] == "Hi"

    @pytest.mark.asyncio
    async def test_create_campaign_without_id_fails(self):
        recorder = Recorder(httpx.Response(200, json={"data": {}}))
        client = ListmonkClient("https://lm.test", "api", "token", transport=httpx.MockTransport(recorder))
        with pytest.raises(RelayFailure):
            await client.create_campaign(relay_email())

    @pytest.mark.asyncio
    async def test_create_campaign_with_non_numeric_id_fails(self):
        recorder = Recorder(httpx.Response(200, json={"data": {"id": "abc"}}))
        client = ListmonkClient("https://lm.test", "api", "token", transport=httpx.MockTransport(recorder))
        with pytest.raises(RelayFailure) as exc_info:
            await client.create_campaign(relay_email())
        assert exc_info.value.message == "listmonk returned a non-numeric campaign id"

    @pytest.mark.asyncio
    async def test_schedule_campaign(self):
        recorder = Recorder(httpx.Response(200, json={"data": True}))
        client = ListmonkClient("https://lm.test", "api", "token", transport=httpx.MockTransport(recorder))

        await client.schedule_campaign(77)
        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/campaigns/77/status"
        assert recorder.json_body() == {"status": "scheduled"}


class TestMauticClient:
    def test_format_publish_up(self):
        dt = datetime(2024, 1, 15, 10, 30, 5, tzinfo=timezone.utc)
        assert format_publish_up(dt) == "2024-01-15 10:30:05"

    @pytest.mark.asyncio
    async def test_get_email_reads_template_and_lists(self):
        recorder = Recorder(httpx.Response(200, json={
            "email": {
                "id": 12,
                "subject": "Template",
                "customHtml": "<h1>%%SIGNAL_TITLE%%</h1>",
                "emailType": "list",
                "lists": {"0": {"id": 4, "name": "Signal"}, "1": {"id": 9}},
            }
        }))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))

        template = await client.get_email(12)
        assert template.html == "<h1>%%SIGNAL_TITLE%%</h1>"
        assert template.list_ids == [4, 9]
        assert recorder.requests[0].url.path == "/api/emails/12"

    @pytest.mark.asyncio
    async def test_get_email_accepts_list_array(self):
        recorder = Recorder(httpx.Response(200, json={"email": {"id": 12, "lists": [{"id": 5}]}}))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))
        assert (await client.get_email(12)).list_ids == [5]

    @pytest.mark.asyncio
    async def test_create_email_payload(self):
        recorder = Recorder(httpx.Response(201, json={"email": {"id": 88}}))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))

        email_id = await client.create_email(
            "Signal: Hi",
            "Hi",
            "<p>b</p>",
            {9, 4},
            publish_up=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        )
        assert email_id == 88
        body = recorder.json_body()
        assert recorder.requests[0].url.path == "/api/emails/new"
        assert body["emailType"] == "list"
        assert body["isPublished"] is True
        assert body["lists"] == [4, 9]
        assert body["customHtml"] == "<p>b</p>"
        assert body["publishUp"] == "2024-01-15 10:30:00"

    @pytest.mark.asyncio
    async def test_create_email_without_publish_up(self):
        recorder = Recorder(httpx.Response(201, json={"email": {"id": 88}}))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))
        await client.create_email("n", "s", "h", [1])
        assert "publishUp" not in recorder.json_body()

    @pytest.mark.asyncio
    async def test_create_email_with_non_numeric_id_fails(self):
        recorder = Recorder(httpx.Response(201, json={"email": {"id": "new"}}))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))
        with pytest.raises(RelayFailure):
            await client.create_email("n", "s", "h", [1])

    @pytest.mark.asyncio
    async def test_send_email(self):
        recorder = Recorder(httpx.Response(200, json={"success": 1}))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))
        await client.send_email(88)
        assert recorder.requests[0].method == "POST"
        assert recorder.requests[0].url.path == "/api/emails/88/send"

    @pytest.mark.asyncio
    async def test_create_contact_and_add_to_segment(self):
        recorder = Recorder(
            httpx.Response(201, json={"contact": {"id": 501}}),
            httpx.Response(200, json={"success": 1}),
        )
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))

        contact_id = await client.create_contact("ada@example.com", "Ada", "Lovelace")
        await client.add_contact_to_segment(3, contact_id)

        assert contact_id == 501
        assert recorder.json_body(0) == {
            "email": "ada@example.com",
            "firstname": "Ada",
            "lastname": "Lovelace",
        }
        assert recorder.requests[1].url.path == "/api/segments/3/contact/501/add"

    @pytest.mark.asyncio
    async def test_health_check_reports_unreachable_template(self):
        recorder = Recorder(httpx.Response(404, json={"errors": []}))
        client = MauticClient("https://mautic.test", "u", "p", transport=httpx.MockTransport(recorder))

        result = await client.health_check(12)
        assert result == {"reachable": False, "error": "Mautic returned 404"}
