"""
Tests for partnertrace.dispatch -- converting collaborator calls into
explicit dispatch results.
"""

from partnertrace.dispatch import attempt_dispatch
from partnertrace.models import DispatchChannel


class TestAttemptDispatch:
    def test_string_return_becomes_reference(self):
        result = attempt_dispatch(DispatchChannel.IN_APP, "c1", "hiv", lambda: "n-1")
        assert result.succeeded
        assert result.reference == "n-1"
        assert result.error == ""

    def test_true_return_has_no_reference(self):
        result = attempt_dispatch(DispatchChannel.PUSH, "c1", "hiv", lambda: True)
        assert result.succeeded
        assert result.reference == ""

    def test_exception_is_captured(self):
        def send():
            raise TimeoutError("slow provider")

        result = attempt_dispatch(DispatchChannel.SMS, "c1", "hiv", send)
        assert result.succeeded is False
        assert result.error == "TimeoutError: slow provider"
        assert result.channel == DispatchChannel.SMS

    def test_falsy_return_is_failure(self):
        for outcome in (False, None, ""):
            result = attempt_dispatch(DispatchChannel.SMS, "c1", "hiv", lambda: outcome)
            assert result.succeeded is False
            assert result.error == "Collaborator reported failure."
