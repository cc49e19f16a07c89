"""
Tests for the transaction dispatcher.
"""

import asyncio

import pytest

from acmc_bench.workload.dispatch import OutcomeRecord, TransactionDispatcher, TransactionRequest


def make_request(**overrides):
    fields = dict(
        operation="checkPerm",
        contract_id="acmc",
        function="CheckPerm",
        arguments=("sig", "download", "uid", "QmRes"),
        invoker="User1",
        read_only=False,
        timeout_s=60.0,
    )
    fields.update(overrides)
    return TransactionRequest(**fields)


class StepClock:
    def __init__(self, *values):
        self._values = list(values)

    def __call__(self):
        return self._values.pop(0)


class TestDispatch:

    def test_success_is_timed_and_classified(self, submitter):
        dispatcher = TransactionDispatcher(submitter, clock=StepClock(10.0, 12.5))
        record = asyncio.run(dispatcher.dispatch(make_request()))
        assert record == OutcomeRecord("checkPerm", True, 10.0, 12.5)
        assert record.latency_ms == 2.5
        assert submitter.requests == [make_request()]

    def test_failed_status_is_recorded(self, make_submitter):
        dispatcher = TransactionDispatcher(make_submitter(result=[{"status": "VALID"}, {"code": 11}]))
        record = asyncio.run(dispatcher.dispatch(make_request()))
        assert record.ok is False

    def test_raised_error_becomes_failed_record(self, make_submitter):
        dispatcher = TransactionDispatcher(
            make_submitter(error=ConnectionError("peer down")), clock=StepClock(1.0, 4.0)
        )
        record = asyncio.run(dispatcher.dispatch(make_request()))
        assert record == OutcomeRecord("checkPerm", False, 1.0, 4.0)

    def test_synchronous_capability(self):
        dispatcher = TransactionDispatcher(lambda request: {"code": 0})
        assert asyncio.run(dispatcher.dispatch(make_request())).ok is True

    def test_classifier_error_fails_closed(self, submitter):
        def broken(result):
            raise TypeError("unexpected shape")

        dispatcher = TransactionDispatcher(submitter, classifier=broken)
        assert asyncio.run(dispatcher.dispatch(make_request())).ok is False

    def test_cancellation_is_not_swallowed(self, make_submitter):
        dispatcher = TransactionDispatcher(make_submitter(error=asyncio.CancelledError()))
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(dispatcher.dispatch(make_request()))

    def test_default_clock_is_monotonic(self, submitter):
        record = asyncio.run(TransactionDispatcher(submitter).dispatch(make_request()))
        assert record.end_ms >= record.start_ms


def test_request_payload_shape():
    payload = make_request(read_only=True, function="TraceCid", arguments=("QmRes_2",)).to_payload()
    assert payload == {
        "contractId": "acmc",
        "contractFunction": "TraceCid",
        "contractArguments": ["QmRes_2"],
        "invokerIdentity": "User1",
        "readOnly": True,
        "timeout": 60.0,
    }
