"""
Unit tests for error handling utilities.

Tests cover:
- Retryable error classification (ClientError codes and message patterns)
- Retry with exponential backoff
- Immediate re-raise of non-retryable errors
- Cancellation tokens
"""

from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from governance_engine.exceptions import AnalysisCancelledError
from governance_engine.utils import CancellationToken, RetryableError, is_retryable_error, retry_with_backoff


def _client_error(code):
    return ClientError({'Error': {'Code': code, 'Message': 'test'}}, 'Operation')


@pytest.mark.parametrize("error, expected", [
    (RetryableError("anything"), True),
    (_client_error('ThrottlingException'), True),
    (_client_error('ServiceUnavailable'), True),
    (_client_error('AccessDenied'), False),
    (ConnectionError("Connection reset by peer"), True),
    (TimeoutError("request timed out"), True),
    (RuntimeError("Too many requests"), True),
    (ValueError("invalid subscription id"), False),
])
def test_is_retryable_error(error, expected):
    assert is_retryable_error(error) is expected


@patch('governance_engine.utils.error_handling.time.sleep')
def test_retry_succeeds_after_transient_failures(mock_sleep):
    func = Mock(side_effect=[ConnectionError("network"), ConnectionError("network"), "ok"])

    assert retry_with_backoff(func, max_retries=3, initial_delay=1.0) == "ok"
    assert func.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]


@patch('governance_engine.utils.error_handling.time.sleep')
def test_retry_exhausted_reraises(mock_sleep):
    func = Mock(side_effect=ConnectionError("network down"))

    with pytest.raises(ConnectionError):
        retry_with_backoff(func, max_retries=2, initial_delay=0.1)

    assert func.call_count == 2
    assert mock_sleep.call_count == 1


@patch('governance_engine.utils.error_handling.time.sleep')
def test_non_retryable_raises_immediately(mock_sleep):
    func = Mock(side_effect=ValueError("bad input"))

    with pytest.raises(ValueError):
        retry_with_backoff(func)

    assert func.call_count == 1
    mock_sleep.assert_not_called()


@patch('governance_engine.utils.error_handling.time.sleep')
def test_custom_retryable_check(mock_sleep):
    func = Mock(side_effect=[ValueError("flaky"), "ok"])

    assert retry_with_backoff(func, retryable_check=lambda e: isinstance(e, ValueError)) == "ok"


def test_cancellation_token_chain():
    parent = CancellationToken()
    child = parent.child()
    sibling = parent.child()

    child.cancel("timed out")
    assert child.is_cancelled
    assert not sibling.is_cancelled
    assert not parent.is_cancelled

    parent.cancel("Assessment cancelled")
    assert sibling.is_cancelled
    with pytest.raises(AnalysisCancelledError, match="Assessment cancelled"):
        sibling.raise_if_cancelled()
    with pytest.raises(AnalysisCancelledError, match="timed out"):
        child.raise_if_cancelled()
