"""Tests for the exception hierarchy."""

import pytest

from vm_lifecycle.exceptions import (
    AmbiguousResourceError,
    ConfigurationError,
    InvalidArgumentError,
    OperationAbortedError,
    ResourceNotFoundError,
    ResourceOperationError,
    VmLifecycleError,
)


@pytest.mark.parametrize(
    "error,code",
    [
        (ResourceNotFoundError("x"), "RESOURCE_NOT_FOUND"),
        (AmbiguousResourceError("x"), "AMBIGUOUS_RESOURCE"),
        (InvalidArgumentError("x"), "INVALID_ARGUMENT"),
        (ResourceOperationError("x"), "OPERATION_FAILED"),
        (OperationAbortedError(), "OPERATION_ABORTED"),
        (ConfigurationError("x"), "CONFIGURATION_ERROR"),
    ],
)
def test_error_codes(error, code):
    assert isinstance(error, VmLifecycleError)
    assert error.error_code == code


def test_str_includes_context_cause_and_suggestion():
    cause = RuntimeError("409 Conflict")
    error = ResourceOperationError(
        "Failed to delete network interface nic1",
        resource_type="network interface",
        name="nic1",
        resource_group="rg-app",
        cause=cause,
    )

    text = str(error)

    assert text.startswith("[OPERATION_FAILED] Failed to delete network interface nic1")
    assert "resource_group=rg-app" in text
    assert "caused by: 409 Conflict" in text
    assert "suggestion:" in text


def test_ambiguous_error_names_count_and_groups():
    error = AmbiguousResourceError(
        "Found 2 virtual machines named web01",
        name="web01",
        match_count=2,
        resource_groups=["rg-a", "rg-b"],
    )
    assert error.match_count == 2
    assert error.context == {"name": "web01", "match_count": 2, "resource_groups": "rg-a,rg-b"}


def test_to_dict():
    data = InvalidArgumentError("bad", argument="destination_group").to_dict()
    assert data == {
        "error_type": "InvalidArgumentError",
        "message": "bad",
        "error_code": "INVALID_ARGUMENT",
        "context": {"argument": "destination_group"},
        "cause": None,
        "recovery_suggestion": None,
    }
