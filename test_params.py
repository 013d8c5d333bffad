"""Merge de parámetros y validación por endpoint."""

import pytest

from analytics_api.event_collector.params import (
    ParameterValidationError,
    merge_params,
    validate_identify_params,
    validate_track_params,
    validate_update_params,
)


def test_post_form_values_override_query():
    assert merge_params("POST", {"a": "1"}, {"a": "2"}) == {"a": "2"}


def test_get_ignores_form_values():
    assert merge_params("GET", {"a": "1"}, {"a": "2"}) == {"a": "1"}


def test_post_keeps_query_only_keys():
    merged = merge_params("POST", {"project": "p", "a": "1"}, {"event": "click"})
    assert merged == {"project": "p", "a": "1", "event": "click"}


def test_other_methods_behave_like_get():
    assert merge_params("PUT", {"a": "1"}, {"b": "2"}) == {"a": "1"}


def test_merge_does_not_mutate_inputs():
    query, form = {"a": "1"}, {"a": "2"}
    merge_params("POST", query, form)
    assert query == {"a": "1"}
    assert form == {"a": "2"}


def test_track_validation_reports_fields_in_order():
    params = {}
    with pytest.raises(ParameterValidationError, match="Missing required field: project"):
        validate_track_params(params)

    params["project"] = "p"
    with pytest.raises(ParameterValidationError, match="Missing required field: event"):
        validate_track_params(params)

    params["event"] = "click"
    with pytest.raises(ParameterValidationError, match="Missing required field: timestamp"):
        validate_track_params(params)

    params["timestamp"] = "1704067200000"
    validate_track_params(params)


def test_empty_string_counts_as_present():
    validate_track_params({"project": "", "event": "", "timestamp": ""})


def test_identify_requires_user_property():
    params = {"project": "p", "timestamp": "1704067200000"}
    with pytest.raises(ParameterValidationError) as exc_info:
        validate_identify_params(params)
    assert exc_info.value.message == "At least one user property (u_*) is required for identify events"

    params["u_email"] = "a@b.com"
    validate_identify_params(params)


def test_identify_checks_timestamp_before_user_properties():
    with pytest.raises(ParameterValidationError, match="timestamp"):
        validate_identify_params({"project": "p"})


def test_update_requires_only_id():
    with pytest.raises(ParameterValidationError, match="Missing required field: id"):
        validate_update_params({"project": "p", "event": "x"})
    validate_update_params({"id": "evt_1"})
