"""
Tests for the recording lifecycle state machine.
"""

import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from meeting.errors import DeviceUnavailable, TranscriptionFailed
from meeting.state import RecordingStateMachine, RecordingStatus, TRANSITIONS


def _ok():
    return None


def _no_device():
    raise DeviceUnavailable("No input device found")


@pytest.fixture
def machine():
    return RecordingStateMachine()


def _to_transcribing(machine):
    assert machine.start(_ok)
    return _to_transcribing_from_recording(machine)


def _to_transcribing_from_recording(machine):
    assert machine.request_stop()
    return machine.begin_transcription()


class TestStart:

    def test_start_from_idle(self, machine):
        assert machine.start(_ok)

        session = machine.snapshot()
        assert session.status == RecordingStatus.RECORDING
        assert session.started_at is not None
        assert session.chunks == []
        assert session.session_id == 1

    def test_start_while_recording_rejected(self, machine):
        machine.start(_ok)
        machine.append_chunk("a")

        assert not machine.start(_ok)

        session = machine.snapshot()
        assert session.status == RecordingStatus.RECORDING
        assert session.chunks == ["a"]
        assert session.session_id == 1

    def test_device_failure_moves_to_error(self, machine):
        assert not machine.start(_no_device)

        session = machine.snapshot()
        assert session.status == RecordingStatus.ERROR
        assert isinstance(session.error, DeviceUnavailable)
        assert session.error.reason == "No input device found"

    def test_start_rejected_in_error_until_acknowledged(self, machine):
        machine.start(_no_device)
        calls = []

        assert not machine.start(lambda: calls.append(1))
        assert calls == []

        assert machine.acknowledge()
        assert machine.status == RecordingStatus.IDLE
        assert machine.snapshot().error is None
        assert machine.start(_ok)

    def test_other_acquire_errors_propagate(self, machine):
        def broken():
            raise RuntimeError("driver crashed")

        with pytest.raises(RuntimeError):
            machine.start(broken)
        assert machine.status == RecordingStatus.IDLE


class TestPauseResume:

    def test_pause_and_resume(self, machine):
        machine.start(_ok)

        assert machine.pause()
        assert machine.status == RecordingStatus.PAUSED
        assert not machine.pause()

        assert machine.resume()
        assert machine.status == RecordingStatus.RECORDING
        assert not machine.resume()

    def test_pause_from_idle_rejected(self, machine):
        assert not machine.pause()
        assert machine.status == RecordingStatus.IDLE

    def test_chunks_kept_across_pause(self, machine):
        machine.start(_ok)
        machine.append_chunk(1)
        machine.pause()
        machine.append_chunk(2)
        machine.resume()
        machine.append_chunk(3)

        assert machine.snapshot().chunks == [1, 2, 3]


class TestStopAndTranscribe:

    def test_stop_from_idle_rejected(self, machine):
        assert not machine.request_stop()
        assert machine.status == RecordingStatus.IDLE

    def test_stop_from_paused(self, machine):
        machine.start(_ok)
        machine.pause()

        assert machine.request_stop()
        assert machine.status == RecordingStatus.STOPPING

    def test_chunks_dropped_after_stop(self, machine):
        machine.start(_ok)
        assert machine.append_chunk("a")
        machine.request_stop()

        assert not machine.append_chunk("late")
        assert machine.begin_transcription() == ["a"]

    def test_chunks_dropped_when_idle(self, machine):
        assert not machine.append_chunk("a")
        assert machine.snapshot().chunks == []

    def test_begin_transcription_only_from_stopping(self, machine):
        assert machine.begin_transcription() is None
        machine.start(_ok)
        assert machine.begin_transcription() is None

    def test_full_round_trip(self, machine):
        machine.start(_ok)
        machine.append_chunk("a")
        machine.append_chunk("b")

        chunks = _to_transcribing_from_recording(machine)

        assert chunks == ["a", "b"]
        assert machine.status == RecordingStatus.TRANSCRIBING
        assert machine.complete()
        session = machine.snapshot()
        assert session.status == RecordingStatus.IDLE
        assert session.chunks == []
        assert session.started_at is None

    def test_stop_while_transcribing_rejected(self, machine):
        _to_transcribing(machine)

        assert not machine.request_stop()
        assert not machine.cancel()
        assert machine.status == RecordingStatus.TRANSCRIBING

    def test_failure_keeps_reason(self, machine):
        _to_transcribing(machine)

        assert machine.fail(TranscriptionFailed("Server error: 500"))

        session = machine.snapshot()
        assert session.status == RecordingStatus.ERROR
        assert session.error.reason == "Server error: 500"

    def test_stale_session_completion_ignored(self, machine):
        _to_transcribing(machine)
        current = machine.session_id

        assert not machine.complete(session_id=current - 1)
        assert not machine.fail(TranscriptionFailed("late"), session_id=current - 1)
        assert machine.status == RecordingStatus.TRANSCRIBING

        assert machine.complete(session_id=current)

    def test_complete_outside_transcribing_rejected(self, machine):
        assert not machine.complete()
        assert not machine.fail(TranscriptionFailed("x"))

    def test_session_id_increments_per_recording(self, machine):
        _to_transcribing(machine)
        machine.complete()
        _to_transcribing(machine)

        assert machine.session_id == 2


class TestCancel:

    def test_cancel_discards_chunks(self, machine):
        machine.start(_ok)
        machine.append_chunk("a")

        assert machine.cancel()

        session = machine.snapshot()
        assert session.status == RecordingStatus.IDLE
        assert session.chunks == []

    def test_cancel_from_paused(self, machine):
        machine.start(_ok)
        machine.pause()
        assert machine.cancel()
        assert machine.status == RecordingStatus.IDLE

    def test_cancel_from_idle_rejected(self, machine):
        assert not machine.cancel()


class TestListeners:

    def test_listener_sees_each_transition(self, machine):
        changes = []
        machine.add_listener(lambda old, new: changes.append((old, new)))

        _to_transcribing(machine)
        machine.complete()

        S = RecordingStatus
        assert changes == [
            (S.IDLE, S.RECORDING),
            (S.RECORDING, S.STOPPING),
            (S.STOPPING, S.TRANSCRIBING),
            (S.TRANSCRIBING, S.IDLE),
        ]

    def test_failing_listener_does_not_break_transition(self, machine):
        def broken(old, new):
            raise RuntimeError("listener bug")

        machine.add_listener(broken)

        assert machine.start(_ok)
        assert machine.status == RecordingStatus.RECORDING

    def test_rejected_request_does_not_notify(self, machine):
        changes = []
        machine.add_listener(lambda old, new: changes.append((old, new)))

        machine.pause()
        machine.request_stop()

        assert changes == []


class TestConcurrency:

    def test_only_one_concurrent_start_wins(self, machine):
        barrier = threading.Barrier(8)
        results = []

        def attempt():
            barrier.wait()
            results.append(machine.start(_ok))

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert machine.session_id == 1

    def test_concurrent_appends_all_buffered(self, machine):
        machine.start(_ok)

        def push(offset):
            for i in range(100):
                machine.append_chunk(offset + i)

        threads = [threading.Thread(target=push, args=(n * 100,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(machine.snapshot().chunks) == list(range(400))


def test_transition_table_has_no_exit_from_transcribing_except_outcomes():
    exits = {event for (state, event) in TRANSITIONS if state == RecordingStatus.TRANSCRIBING}
    assert {e.value for e in exits} == {"complete", "fail"}
