"""Tests for error normalization."""

import httpx
import pytest

from ghbridge.client.errors import (
    GitHubApiError,
    GitHubCancelledError,
    GitHubError,
    GitHubTransportError,
    error_from_response,
    format_error_message,
)


def make_response(status: int, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("GET", "https://api.github.com/x"), **kwargs)


class TestFormatErrorMessage:
    """Tests for the canonical message format."""

    def test_status_only(self):
        """Test message with only a status code."""
        assert format_error_message(500) == "Server replied with 500"

    def test_message_and_details(self):
        """Test message with server text and details."""
        message = format_error_message(422, "Validation Failed", [("Milestone", "already_exists")])
        assert message == "Server replied with 422: Validation Failed (Milestone already_exists)"

    def test_blank_details_dropped(self):
        """Test that empty detail entries are left out."""
        message = format_error_message(400, "Bad", [("", ""), ("Issue", "missing")])
        assert message == "Server replied with 400: Bad (Issue missing)"

    def test_blank_server_message(self):
        """Test that whitespace-only messages are ignored."""
        assert format_error_message(404, "   ") == "Server replied with 404"


class TestErrorFromResponse:
    """Tests for mapping responses to GitHubApiError."""

    def test_json_validation_error(self):
        """Test the GitHub validation error document."""
        response = make_response(
            422,
            json={
                "message": "Validation Failed",
                "errors": [{"resource": "Milestone", "code": "already_exists", "field": "title"}],
            },
        )
        error = error_from_response(response)

        assert isinstance(error, GitHubApiError)
        assert error.status_code == 422
        assert error.server_message == "Validation Failed"
        assert error.details == [("Milestone", "already_exists")]
        assert str(error) == "Server replied with 422: Validation Failed (Milestone already_exists)"
        assert error.is_conflict

    def test_json_without_errors(self):
        """Test a JSON body carrying only a message."""
        error = error_from_response(make_response(404, json={"message": "Not Found"}))
        assert str(error) == "Server replied with 404: Not Found"
        assert error.is_not_found
        assert not error.is_conflict

    def test_plain_text_body(self):
        """Test that non-JSON bodies are appended verbatim."""
        response = make_response(502, text="Bad gateway", headers={"content-type": "text/plain"})
        error = error_from_response(response)
        assert str(error) == "Server replied with 502: Bad gateway"

    def test_empty_body(self):
        """Test that an empty body gives the bare status message."""
        error = error_from_response(make_response(503))
        assert str(error) == "Server replied with 503"
        assert error.server_message is None

    def test_invalid_json_falls_back_to_text(self):
        """Test a body labelled JSON that does not parse."""
        response = make_response(500, content=b"oops", headers={"content-type": "application/json"})
        assert str(error_from_response(response)) == "Server replied with 500: oops"


class TestTaxonomy:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize("error_type", [GitHubApiError, GitHubCancelledError, GitHubTransportError])
    def test_all_derive_from_base(self, error_type):
        """Test every client error is a GitHubError."""
        assert issubclass(error_type, GitHubError)

    def test_cancelled_default_message(self):
        """Test the default cancellation message."""
        assert str(GitHubCancelledError()) == "Operation was cancelled."
