"""Tests for the CiviCRM connector."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from proveg_api.connectors.civicrm import CIVICRM_REST_PATH, CiviCRMConnector
from proveg_api.exceptions import (
    APIError,
    AuthenticationError,
    ConnectionError,
    CredentialError,
    RateLimitError,
)


# ── Fixtures ──────────────────────────────────────────────────────────

FAKE_CREDS = {
    "url": "https://crm.example.org/",
    "api_key": "test-api-key",
    "site_key": "test-site-key",
}


def _make_response(status_code=200, json_data=None, text="", headers=None):
    """Create a mock requests.Response."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.text = text
    resp.headers = headers or {}
    resp.json.return_value = json_data or {}
    return resp


def _sent(mock_post, index=-1):
    """Decode the form data of a recorded requests.post call."""
    data = mock_post.call_args_list[index].kwargs["data"]
    return data["entity"], data["action"], json.loads(data["json"])


@pytest.fixture
def connector():
    """Create a CiviCRMConnector with mocked credentials."""
    c = CiviCRMConnector()
    mock_cm = MagicMock()
    mock_cm.get_civicrm_credentials.return_value = FAKE_CREDS
    c._credential_manager = mock_cm
    yield c


@pytest.fixture
def connected_connector(connector):
    """Create a connector that is already 'connected'."""
    connector.connect()
    return connector


# ── Initialization ────────────────────────────────────────────────────


class TestInit:
    def test_initial_state(self):
        c = CiviCRMConnector()
        assert c._base_url is None
        assert not c.is_connected()
        assert c.transactions.get_frame() is None

    def test_repr_disconnected(self):
        c = CiviCRMConnector()
        assert repr(c) == "<CiviCRMConnector status=disconnected>"

    def test_repr_connected(self, connected_connector):
        assert repr(connected_connector) == "<CiviCRMConnector status=connected>"


# ── Connect / Disconnect ─────────────────────────────────────────────


class TestConnect:
    def test_connect_success(self, connector):
        connector.connect()

        assert connector.is_connected()
        assert connector._base_url == "https://crm.example.org"
        assert connector._api_key == "test-api-key"
        assert connector._site_key == "test-site-key"

    def test_connect_missing_credentials(self, connector):
        connector._credential_manager.get_civicrm_credentials.side_effect = CredentialError(
            "missing"
        )

        with pytest.raises(ConnectionError, match="Failed to connect to CiviCRM: missing"):
            connector.connect()

        assert not connector.is_connected()

    def test_disconnect(self, connected_connector):
        connected_connector.disconnect()

        assert not connected_connector.is_connected()
        assert connected_connector._api_key is None

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_request_connects_lazily(self, mock_post, connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "values": []})

        connector.get("Campaign")

        assert connector.is_connected()


# ── Health Check ──────────────────────────────────────────────────────


class TestHealthCheck:
    def test_health_check_not_connected(self, connector):
        assert connector.health_check() is False

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_health_check_success(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "values": []})

        assert connected_connector.health_check() is True
        entity, action, _ = _sent(mock_post)
        assert (entity, action) == ("System", "get")

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_health_check_host_error(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(
            200, {"is_error": 1, "error_message": "Permission denied"}
        )

        assert connected_connector.health_check() is False


# ── Context Manager ───────────────────────────────────────────────────


class TestContextManager:
    def test_context_manager(self, connector):
        with connector as c:
            assert c.is_connected()

        assert not c.is_connected()


# ── Request transport ────────────────────────────────────────────────


class TestRequest:
    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_request_format(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "values": []})

        connected_connector.call("Contact", "get", {"email": "jane@example.org"})

        args, kwargs = mock_post.call_args
        assert args[0] == f"https://crm.example.org{CIVICRM_REST_PATH}"
        assert kwargs["data"]["api_key"] == "test-api-key"
        assert kwargs["data"]["key"] == "test-site-key"
        assert kwargs["data"]["entity"] == "Contact"
        assert kwargs["data"]["action"] == "get"
        assert json.loads(kwargs["data"]["json"]) == {"email": "jane@example.org"}
        assert kwargs["headers"]["X-Requested-With"] == "XMLHttpRequest"
        assert kwargs["timeout"] == 30

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_none_values_are_not_sent(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "id": 1, "values": []})

        connected_connector.call(
            "Contribution", "create", {"total_amount": 10.0, "campaign_id": None}
        )

        _, _, params = _sent(mock_post)
        assert params == {"total_amount": 10.0}

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_host_error_raises_api_error(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(
            200,
            {
                "is_error": 1,
                "error_message": "Mandatory key(s) missing",
                "error_code": "mandatory_missing",
                "fields": ["contact_id"],
            },
        )

        with pytest.raises(APIError) as exc_info:
            connected_connector.call("Contribution", "create", {})

        assert exc_info.value.message == "Mandatory key(s) missing"
        assert exc_info.value.error_code == "mandatory_missing"
        assert exc_info.value.extra_params == {
            "fields": ["contact_id"],
            "error_code": "mandatory_missing",
        }

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_auth_failure(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(401, text="Unauthorized")

        with pytest.raises(AuthenticationError, match="401"):
            connected_connector.call("Contact", "get")

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_rate_limit(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(429, headers={"Retry-After": "15"})

        with pytest.raises(RateLimitError) as exc_info:
            connected_connector.call("Contact", "create")

        assert exc_info.value.retry_after == 15

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_server_error(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(500, text="Internal Server Error")

        with pytest.raises(ConnectionError, match="CiviCRM API error 500"):
            connected_connector.call("Contact", "create")

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_network_error(self, mock_post, connected_connector):
        mock_post.side_effect = requests.ConnectionError("DNS failure")

        with pytest.raises(ConnectionError, match="CiviCRM API request failed"):
            connected_connector.call("Contact", "create")

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_non_json_response(self, mock_post, connected_connector):
        resp = _make_response(200, text="<html>")
        resp.json.side_effect = ValueError("No JSON")
        mock_post.return_value = resp

        with pytest.raises(ConnectionError, match="non-JSON"):
            connected_connector.call("Contact", "create")


# ── Entity helpers ───────────────────────────────────────────────────


class TestEntityHelpers:
    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_get_returns_values(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(
            200, {"is_error": 0, "count": 1, "values": [{"id": 3}]}
        )

        values = connected_connector.get("Campaign", external_identifier="SPRING")

        assert values == [{"id": 3}]
        _, _, params = _sent(mock_post)
        assert params == {"external_identifier": "SPRING", "sequential": 1}

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_get_single(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"id": "12", "contact_id": "5"})

        record = connected_connector.get_single("Membership", id=12)

        assert record["contact_id"] == "5"
        entity, action, _ = _sent(mock_post)
        assert (entity, action) == ("Membership", "getsingle")

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_delete(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "values": 1})

        connected_connector.delete("Contribution", 8)

        entity, action, params = _sent(mock_post)
        assert (entity, action) == ("Contribution", "delete")
        assert params == {"id": 8, "check_permissions": 0}

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_get_or_create_contact(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "id": "55"})

        contact_id = connected_connector.get_or_create_contact(
            "Individual", {"email": "jane@example.org", "gender_id": None}, profile="proveg"
        )

        assert contact_id == 55
        entity, action, params = _sent(mock_post)
        assert (entity, action) == ("Contact", "getorcreate")
        assert params == {
            "check_permissions": 0,
            "contact_type": "Individual",
            "email": "jane@example.org",
            "xcm_profile": "proveg",
        }

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_get_or_create_contact_without_id(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "values": []})

        assert connected_connector.get_or_create_contact("Individual", {}) is None

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_option_values(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(
            200,
            {
                "is_error": 0,
                "values": [
                    {"value": 1, "name": "Female"},
                    {"value": 2, "name": "Male"},
                ],
            },
        )

        assert connected_connector.get_option_values("gender") == {"1": "Female", "2": "Male"}
        assert connected_connector.get_option_value("gender", "Male") == "2"
        assert connected_connector.get_option_value("gender", "Other") is None
        _, _, params = _sent(mock_post)
        assert params["option_group_id"] == "gender"
        assert params["options"] == {"limit": 0}


# ── Transaction frames ───────────────────────────────────────────────


class TestTransactionRegistration:
    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_create_registers_in_open_frame(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "id": 9, "values": []})

        with connected_connector.transactions.begin() as frame:
            connected_connector.create("Contribution", total_amount=10.0)

        assert frame.created == [("Contribution", 9)]

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_update_is_not_registered(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "id": 9, "values": []})

        with connected_connector.transactions.begin() as frame:
            connected_connector.create("Membership", id=9, status_id=2)

        assert frame.created == []

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_create_outside_frame(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "id": 9, "values": []})

        result = connected_connector.create("Activity", subject="Follow up")

        assert result["id"] == 9
        assert connected_connector.transactions.get_frame() is None

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_rollback_deletes_through_connector(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(200, {"is_error": 0, "id": 9, "values": []})

        with connected_connector.transactions.begin() as frame:
            connected_connector.create("Contribution", total_amount=10.0)
            frame.force_rollback()

        entity, action, params = _sent(mock_post)
        assert (entity, action) == ("Contribution", "delete")
        assert params["id"] == 9


# ── Retries ──────────────────────────────────────────────────────────


class TestRetry:
    @patch("time.sleep")
    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_reads_retry_transport_failures(self, mock_post, mock_sleep, connected_connector):
        mock_post.side_effect = [
            requests.ConnectionError("reset"),
            _make_response(200, {"is_error": 0, "values": [{"id": 3}]}),
        ]

        assert connected_connector.get("Campaign") == [{"id": 3}]
        assert mock_post.call_count == 2

    @patch("time.sleep")
    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_reads_give_up_after_three_attempts(
        self, mock_post, mock_sleep, connected_connector
    ):
        mock_post.return_value = _make_response(503, text="Unavailable")

        with pytest.raises(ConnectionError):
            connected_connector.get("Campaign")

        assert mock_post.call_count == 3

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_host_errors_are_not_retried(self, mock_post, connected_connector):
        mock_post.return_value = _make_response(
            200, {"is_error": 1, "error_message": "Expected one Membership"}
        )

        with pytest.raises(APIError):
            connected_connector.get_single("Membership", id=1)

        assert mock_post.call_count == 1

    @patch("proveg_api.connectors.civicrm.requests.post")
    def test_writes_are_not_retried(self, mock_post, connected_connector):
        mock_post.side_effect = requests.ConnectionError("reset")

        with pytest.raises(ConnectionError):
            connected_connector.create("Contribution", total_amount=10.0)

        assert mock_post.call_count == 1
