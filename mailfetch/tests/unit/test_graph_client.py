"""
Test Graph API inbox listing and deletion.
"""
from unittest.mock import Mock, patch

import httpx
import pytest

from mailfetch.core.email.graph_client import GraphClient, MALFORMED_TOKEN_MARKER
from mailfetch.core.errors import GraphAPIError, ProtocolMismatch


def graph_response(status_code=200, payload=None, text=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text if text is not None else str(payload)
    return response


@pytest.fixture
def client():
    return GraphClient(base_url="https://graph.test/v1.0/")


INBOX_PAYLOAD = {
    "value": [
        {
            "id": "m2",
            "subject": "Newest",
            "from": {"emailAddress": {"address": "a@corp.com"}},
            "toRecipients": [{"emailAddress": {"address": "me@corp.com"}}],
            "bodyPreview": "Hello\r\nthere",
            "body": {"contentType": "html", "content": "<p>Hello there</p>"},
        },
        {
            "id": "m1",
            "subject": "Older",
            "from": {"emailAddress": {"address": "b@corp.com"}},
            "toRecipients": [],
            "bodyPreview": "",
            "body": {"contentType": "text", "content": "plain"},
        },
    ]
}


class TestListInbox:
    """Test list_inbox"""

    def test_lists_messages(self, client):
        with patch("httpx.Client.get", return_value=graph_response(payload=INBOX_PAYLOAD)) as mock_get:
            messages = client.list_inbox("token-abc")

        args, kwargs = mock_get.call_args
        assert args[0] == "https://graph.test/v1.0/me/mailfolders/inbox/messages"
        assert kwargs["headers"]["Authorization"] == "Bearer token-abc"

        assert [m.id for m in messages] == ["m2", "m1"]
        assert messages[0].preview == "Hello⏎there"
        assert messages[0].content_type == "html"
        assert messages[1].recipient == "Unknown"

    def test_malformed_token_is_protocol_mismatch(self, client):
        text = ('{"error":{"code":"InvalidAuthenticationToken","message":"'
                + MALFORMED_TOKEN_MARKER + ': Token is not in compact JWS format."}}')
        with patch("httpx.Client.get", return_value=graph_response(401, text=text)):
            with pytest.raises(ProtocolMismatch):
                client.list_inbox("imap-token")

    def test_other_error_status(self, client):
        with patch("httpx.Client.get", return_value=graph_response(403, text='{"error":"Forbidden"}')):
            with pytest.raises(GraphAPIError) as exc_info:
                client.list_inbox("token")

        assert exc_info.value.status_code == 403

    def test_transport_error(self, client):
        with patch("httpx.Client.get", side_effect=httpx.ReadTimeout("timed out")):
            with pytest.raises(GraphAPIError):
                client.list_inbox("token")

    def test_empty_inbox(self, client):
        with patch("httpx.Client.get", return_value=graph_response(payload={"value": []})):
            assert client.list_inbox("token") == []

    def test_invalid_message_fields(self, client):
        payload = {"value": [{"id": "m1", "receivedDateTime": "not-a-date"}]}
        with patch("httpx.Client.get", return_value=graph_response(payload=payload)):
            with pytest.raises(GraphAPIError) as exc_info:
                client.list_inbox("token")

        assert exc_info.value.status_code == 200

    @pytest.mark.parametrize("payload", [{"value": ["oops"]}, ["not", "an", "object"]])
    def test_unexpected_payload_shape(self, client, payload):
        with patch("httpx.Client.get", return_value=graph_response(payload=payload)):
            with pytest.raises(GraphAPIError):
                client.list_inbox("token")


class TestDeleteMessage:
    """Test delete_message"""

    def test_delete_success(self, client):
        with patch("httpx.Client.delete", return_value=graph_response(204, text="")) as mock_delete:
            assert client.delete_message("token", "m1") is True

        assert mock_delete.call_args.args[0] == "https://graph.test/v1.0/me/messages/m1"

    def test_delete_failure(self, client):
        with patch("httpx.Client.delete", return_value=graph_response(404, text="not found")):
            assert client.delete_message("token", "m1") is False
