"""Shared fixtures: a deterministic clock and a scripted recognition session."""

import pytest

from telepace import debug_log
from telepace.recognition import RecognitionSession, SessionCallbacks, TranscriptionResult
from telepace.scheduler import ManualScheduler


class FakeSession(RecognitionSession):
    """Recognition session driven by the test instead of a microphone."""

    def __init__(self, language: str, callbacks: SessionCallbacks,
                 start_error: Exception | None = None) -> None:
        super().__init__(language, callbacks)
        self.start_error = start_error
        self.started: bool = False
        self.stopped: bool = False

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    # Helpers for tests

    def begin(self) -> None:
        self.callbacks.on_start()

    def final(self, text: str, confidence: float = 1.0) -> None:
        self.callbacks.on_result(TranscriptionResult(text, False, confidence))

    def partial(self, text: str) -> None:
        self.callbacks.on_result(TranscriptionResult(text, True))

    def error(self, code: str) -> None:
        self.callbacks.on_error(code)

    def end(self) -> None:
        self.callbacks.on_end()


class FakeSessionFactory:
    """Creates FakeSessions and remembers them in order."""

    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []
        # Errors raised by the next sessions' start(), consumed in order
        self.start_errors: list[Exception] = []

    def __call__(self, language: str, callbacks: SessionCallbacks) -> FakeSession:
        error = self.start_errors.pop(0) if self.start_errors else None
        session = FakeSession(language, callbacks, error)
        self.sessions.append(session)
        return session

    @property
    def latest(self) -> FakeSession:
        return self.sessions[-1]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture(autouse=True)
def _debug_log_disabled():
    """Keep alignment debug logging off unless a test turns it on."""
    debug_log.disable()
    yield
    debug_log.disable()
