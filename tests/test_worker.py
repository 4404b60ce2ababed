import threading
import time

from ticketdesk.worker import ExpiredReservationCleaner


class FakeService:
    def __init__(self, result=0, exc=None):
        self.result = result
        self.exc = exc
        self.calls = []

    def cancel_expired_reservations(self, expire_after):
        self.calls.append(expire_after)
        if self.exc:
            raise self.exc
        return self.result


def test_new_cleaner():
    cleaner = ExpiredReservationCleaner(FakeService(), 60, 900)
    assert cleaner.interval == 60
    assert cleaner.expire_after == 900
    assert cleaner.stopped is False


def test_cleanup_runs():
    service = FakeService(result=5)
    cleaner = ExpiredReservationCleaner(service, 60, 900)
    assert cleaner.run_once() == 5
    assert service.calls == [900]


def test_cleanup_nothing_to_cancel():
    service = FakeService(result=0)
    cleaner = ExpiredReservationCleaner(service, 60, 900)
    assert cleaner.run_once() == 0
    assert service.calls == [900]


def test_cleanup_error_is_swallowed():
    service = FakeService(exc=RuntimeError("boom"))
    cleaner = ExpiredReservationCleaner(service, 60, 900)
    assert cleaner.run_once() is None
    assert service.calls == [900]


def test_start_and_stop():
    service = FakeService()
    cleaner = ExpiredReservationCleaner(service, 0.05, 0.1)
    thread = threading.Thread(target=cleaner.start)
    thread.start()
    time.sleep(0.12)
    cleaner.stop()
    thread.join(1)
    assert not thread.is_alive()
    assert cleaner.stopped
    assert len(service.calls) >= 1
    assert set(service.calls) == {0.1}


def test_stops_on_cancel():
    cleaner = ExpiredReservationCleaner(FakeService(), 0.05, 0.1)
    cancel = threading.Event()
    thread = threading.Thread(target=cleaner.start, args=(cancel,))
    thread.start()
    time.sleep(0.08)
    cancel.set()
    thread.join(1)
    assert not thread.is_alive()
    assert cleaner.stopped