"""Shared fixtures: an in-memory CiviCRM behind the real connector."""

import itertools
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Tuple

import pytest

from proveg_api.config import ProvegSettings
from proveg_api.connectors.civicrm import CiviCRMConnector

# Parameters that steer the API instead of describing records.
META_PARAMS = {"check_permissions", "sequential", "options", "return", "xcm_profile"}

GENDER_OPTIONS = {"1": "Female", "2": "Male", "3": "Other"}
ACTIVITY_TYPE_VALUE = "55"
SCHEDULED_STATUS_VALUE = "1"

CUSTOM_FIELDS = [
    {"id": 10, "custom_group_id.name": "membership_type", "name": "membership_subtype"},
    {"id": 11, "custom_group_id.name": "membership_info", "name": "membership_annual"},
    {"id": 12, "custom_group_id.name": "membership_info", "name": "membership_paid_through"},
]


class FakeCiviCRM(CiviCRMConnector):
    """
    CiviCRM connector whose transport is an in-memory entity store.

    Only ``_request`` is replaced, so result handling, transaction frame
    registration and the entity helpers run unchanged.
    """

    def __init__(self) -> None:
        super().__init__()
        self._is_connected = True
        self._ids = itertools.count(100)
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = defaultdict(dict)
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.failures: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.contact_resolution_returns_nothing = False
        self.mandate_entity_table = None

        self._seed_options("gender", GENDER_OPTIONS)
        self._seed_options(
            "activity_type",
            {ACTIVITY_TYPE_VALUE: "provegapi_failed_contribution_processing"},
        )
        self._seed_options(
            "activity_status", {SCHEDULED_STATUS_VALUE: "Scheduled", "2": "Completed"}
        )
        for field in CUSTOM_FIELDS:
            self.records["CustomField"][field["id"]] = dict(field)
        self.records["Campaign"][3] = {"id": 3, "external_identifier": "SPRING"}

    def _seed_options(self, group: str, options: Dict[str, str]) -> None:
        for value, name in options.items():
            option_id = next(self._ids)
            self.records["OptionValue"][option_id] = {
                "id": option_id,
                "option_group_id": group,
                "value": value,
                "name": name,
            }

    # ── Test helpers ──────────────────────────────────────────────────

    def fail(self, entity: str, action: str, message: str = "boom", code: Any = None) -> None:
        """Make every call of entity.action return a host error."""
        self.failures[(entity, action)] = {
            "is_error": 1,
            "error_message": message,
            "error_code": code,
        }

    def all(self, entity: str) -> List[Dict[str, Any]]:
        return list(self.records[entity].values())

    def calls_to(self, entity: str, action: str) -> List[Dict[str, Any]]:
        return [p for e, a, p in self.calls if e == entity and a == action]

    # ── Transport ─────────────────────────────────────────────────────

    def _request(self, entity: str, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((entity, action, dict(params)))
        if (entity, action) in self.failures:
            return dict(self.failures[(entity, action)])
        handler = getattr(self, f"_handle_{action}")
        return handler(entity, params)

    @staticmethod
    def _data(params: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in params.items() if k not in META_PARAMS}

    def _matching(self, entity: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        filters = self._data(params)
        return [
            dict(record)
            for record in self.records[entity].values()
            if all(str(record.get(k)) == str(v) for k, v in filters.items())
        ]

    def _handle_get(self, entity, params):
        values = self._matching(entity, params)
        return {"is_error": 0, "count": len(values), "values": values}

    def _handle_getsingle(self, entity, params):
        values = self._matching(entity, params)
        if len(values) != 1:
            return {
                "is_error": 1,
                "error_message": f"Expected one {entity} but found {len(values)}",
            }
        return values[0]

    def _insert(self, entity: str, data: Dict[str, Any]) -> Dict[str, Any]:
        record_id = next(self._ids)
        record = {"id": record_id, **data}
        self.records[entity][record_id] = record
        return dict(record)

    def _handle_create(self, entity, params):
        data = self._data(params)
        if entity == "GroupContact":
            for record in self.records[entity].values():
                if (
                    record["group_id"] == data["group_id"]
                    and record["contact_id"] == data["contact_id"]
                ):
                    record["status"] = data["status"]
                    return {"is_error": 0, "count": 1, "values": [dict(record)]}
            return {"is_error": 0, "count": 1, "values": [self._insert(entity, data)]}

        if "id" in data:
            record = self.records[entity].get(int(data["id"]))
            if record is None:
                return {"is_error": 1, "error_message": f"{entity} {data['id']} not found"}
            record.update(data)
            return {"is_error": 0, "id": record["id"], "values": [dict(record)]}

        record = self._insert(entity, data)
        return {"is_error": 0, "id": record["id"], "values": [record]}

    def _handle_delete(self, entity, params):
        if self.records[entity].pop(int(params["id"]), None) is None:
            return {"is_error": 1, "error_message": f"{entity} {params['id']} not found"}
        return {"is_error": 0, "count": 1, "values": 1}

    def _handle_getorcreate(self, entity, params):
        if self.contact_resolution_returns_nothing:
            return {"is_error": 0, "count": 0, "values": []}
        data = self._data(params)
        for record in self.records["Contact"].values():
            if record.get("email") == data.get("email"):
                return {"is_error": 0, "id": record["id"], "values": [dict(record)]}
        record = self._insert("Contact", data)
        return {"is_error": 0, "id": record["id"], "values": [record]}

    def _handle_createfull(self, entity, params):
        data = self._data(params)
        if data["type"] == "RCUR":
            linked = self._insert(
                "ContributionRecur",
                {
                    k: data.get(k)
                    for k in (
                        "contact_id",
                        "amount",
                        "frequency_unit",
                        "frequency_interval",
                        "financial_type_id",
                        "campaign_id",
                        "start_date",
                    )
                },
            )
            table = "civicrm_contribution_recur"
        else:
            linked = self._insert(
                "Contribution",
                {
                    "contact_id": data.get("contact_id"),
                    "total_amount": data.get("amount"),
                    "financial_type_id": data.get("financial_type_id"),
                    "campaign_id": data.get("campaign_id"),
                    "receive_date": data.get("receive_date"),
                    "source": data.get("source"),
                    "contribution_status_id": "Pending",
                },
            )
            table = "civicrm_contribution"
        mandate = self._insert(
            "SepaMandate",
            {
                "entity_table": self.mandate_entity_table or table,
                "entity_id": linked["id"],
                "contact_id": data.get("contact_id"),
                "type": data["type"],
                "iban": data["iban"],
                "bic": data["bic"],
                "creditor_id": data["creditor_id"],
                "start_date": data["start_date"],
            },
        )
        # createfull answers with values keyed by id.
        return {"is_error": 0, "id": mandate["id"], "values": {mandate["id"]: mandate}}


@pytest.fixture
def civicrm():
    """An empty in-memory CiviCRM with option values and custom fields seeded."""
    return FakeCiviCRM()


@pytest.fixture
def settings():
    """Settings with a configured assignee for failure activities."""
    return ProvegSettings(failed_contribution_assignee_id=7)


@pytest.fixture
def request_time():
    return datetime(2026, 3, 15, 10, 30, 0)


@pytest.fixture
def donation_params():
    """A valid one-off PayPal donation."""
    return {
        "amount": 5000,
        "frequency": 0,
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@example.org",
        "street_address": "Hauptstr. 1",
        "postal_code": "10115",
        "city": "Berlin",
        "country": "DE",
        "payment_instrument_id": "paypal",
    }


@pytest.fixture
def sepa_params(donation_params):
    """A valid one-off SEPA donation."""
    params = dict(donation_params)
    params.update(
        {
            "payment_instrument_id": "sepa",
            "iban": "DE89370400440532013000",
            "bic": "COBADEFFXXX",
        }
    )
    return params
