import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from callflow.functions import (
    DEMO_SCHEDULED,
    UnknownFunctionError,
    handle_function_call,
    parse_arguments,
    reference_code,
)
from integrations.call_store import InMemoryCallStore

class TestFunctionCalls:
    """Test in-call function handlers."""

    def setup_method(self):
        self.store = InMemoryCallStore()
        self.lead_params = {
            "firstName": "Ann",
            "lastName": "Lee",
            "email": "ann@acme.com",
            "company": "Acme",
            "industry": "SaaS",
            "employeeCount": "50-100",
            "painPoint": "Manual call handling",
            "timeline": "Q3",
            "budget": "$20k",
            "qualificationScore": 9,
            "callOutcome": "Qualified",
            "nextSteps": "Send proposal"
        }

    def test_capture_lead_info_merges_all_fields(self):
        result = handle_function_call(self.store, "c1", "capture_lead_info", self.lead_params)

        session = self.store.get("c1")
        assert session["first_name"] == "Ann"
        assert session["employee_count"] == "50-100"
        assert session["pain_point"] == "Manual call handling"
        assert session["qualification_score"] == 9
        assert "Thank you Ann!" in result["result"]
        assert "Acme" in result["result"]

    def test_capture_lead_info_without_prior_start(self):
        """Tool writes for an unseen call id create the session lazily."""
        handle_function_call(self.store, "never-started", "capture_lead_info", {"firstName": "Ann"})
        assert self.store.get("never-started") == {"first_name": "Ann"}

    def test_repeated_captures_are_last_write_wins_per_field(self):
        handle_function_call(self.store, "c1", "capture_lead_info", {"firstName": "Ann", "company": "Acme"})
        handle_function_call(self.store, "c1", "capture_lead_info", {"qualificationScore": 6, "company": "Globex"})
        handle_function_call(self.store, "c1", "capture_lead_info", {"qualificationScore": 8})

        assert self.store.get("c1") == {
            "first_name": "Ann",
            "company": "Globex",
            "qualification_score": 8
        }

    def test_field_order_within_event_does_not_matter(self):
        forward = dict(self.lead_params)
        backward = dict(reversed(list(self.lead_params.items())))

        handle_function_call(self.store, "a", "capture_lead_info", forward)
        handle_function_call(self.store, "b", "capture_lead_info", backward)

        assert self.store.get("a") == self.store.get("b")

    def test_create_contact_record_returns_reference_code(self):
        result = handle_function_call(self.store, "call_abc-123xyz", "create_contact_record",
                                      {"firstName": "Ann", "email": "ann@acme.com"})

        assert result["referenceCode"] == "LEAD-BC123XYZ"
        assert result["referenceCode"] in result["result"]
        assert self.store.get("call_abc-123xyz") == {"first_name": "Ann", "email": "ann@acme.com"}

    def test_schedule_demo_sets_next_steps_and_outcome(self):
        result = handle_function_call(self.store, "c1", "schedule_demo", {
            "firstName": "Ann",
            "lastName": "Lee",
            "email": "ann@acme.com",
            "company": "Acme",
            "requestedTime": "Tuesday at 2pm",
            "timezone": "EST",
            "specificNeeds": "CRM integration"
        })

        session = self.store.get("c1")
        assert session["next_steps"] == "Demo requested for Tuesday at 2pm (EST)"
        assert session["call_outcome"] == DEMO_SCHEDULED
        assert session["specific_needs"] == "CRM integration"
        assert session["last_name"] == "Lee"
        assert "Tuesday at 2pm" in result["result"]

    def test_unknown_function_raises(self):
        with pytest.raises(UnknownFunctionError) as exc_info:
            handle_function_call(self.store, "c1", "foo", {})

        assert str(exc_info.value) == "Unknown function: foo"
        assert self.store.get("c1") == {}

    def test_missing_call_id_still_answers(self):
        result = handle_function_call(self.store, None, "capture_lead_info", {"firstName": "Ann"})

        assert "Ann" in result["result"]
        assert len(self.store) == 0

    def test_arguments_as_json_string(self):
        handle_function_call(self.store, "c1", "capture_lead_info", '{"firstName": "Ann"}')
        assert self.store.get("c1") == {"first_name": "Ann"}

class TestHelpers:
    """Test argument parsing and reference codes."""

    def test_parse_arguments(self):
        assert parse_arguments({"a": 1}) == {"a": 1}
        assert parse_arguments('{"a": 1}') == {"a": 1}
        assert parse_arguments("not json") == {}
        assert parse_arguments("[1, 2]") == {}
        assert parse_arguments(None) == {}

    def test_reference_code(self):
        assert reference_code("c1") == "LEAD-C1"
        assert reference_code("call_0123456789abcdef") == "LEAD-89ABCDEF"
        assert reference_code(None) == "LEAD-UNKNOWN"

    def test_missing_function_name_message(self):
        for name in (None, "", ["capture_lead_info"]):
            with pytest.raises(UnknownFunctionError) as exc_info:
                handle_function_call(InMemoryCallStore(), "c1", name, {})
            assert str(exc_info.value) == "Unknown function: <missing>"
