import logging

from music_guesser.services.games import BackgroundScheduler


class DeferredSocketIO:
    """Stands in for SocketIO: background tasks run when the test says so."""

    def __init__(self):
        self.tasks = []
        self.sleeps = []

    def start_background_task(self, target, *args):
        self.tasks.append((target, args))

    def sleep(self, seconds):
        self.sleeps.append(seconds)

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for target, args in tasks:
            target(*args)


def make_scheduler(heartbeat_sec=0):
    sio = DeferredSocketIO()
    return sio, BackgroundScheduler(sio, logging.getLogger('music_guesser.tests'), heartbeat_sec=heartbeat_sec)


def test_callback_receives_its_handle():
    sio, scheduler = make_scheduler()
    fired = []
    handle = scheduler.schedule(30, fired.append, label='turn:ABCD:1')
    sio.run_all()
    assert fired == [handle]
    assert sio.sleeps == [1.0] * 30


def test_cancelled_timer_never_fires():
    sio, scheduler = make_scheduler()
    fired = []
    handle = scheduler.schedule(5, fired.append, label='reveal:ABCD:1')
    handle.cancel()
    handle.cancel()
    sio.run_all()
    assert fired == []
    assert handle.cancelled


def test_heartbeat_sleeps_in_steps(caplog):
    sio, scheduler = make_scheduler(heartbeat_sec=2)
    with caplog.at_level(logging.INFO, logger='music_guesser.tests'):
        scheduler.schedule(5, lambda handle: None, label='turn:ABCD:1')
        sio.run_all()
    assert sio.sleeps == [2, 2, 1]
    assert sum('[timer-heartbeat]' in r.message for r in caplog.records) == 3


def test_callback_errors_are_logged(caplog):
    sio, scheduler = make_scheduler()

    def boom(handle):
        raise RuntimeError('boom')

    with caplog.at_level(logging.ERROR, logger='music_guesser.tests'):
        scheduler.schedule(1, boom, label='turn:ABCD:2')
        sio.run_all()
    assert any('[timer-error] timer=turn:ABCD:2' in r.message for r in caplog.records)


def test_cancelled_timer_stops_waiting_early():
    sio, scheduler = make_scheduler()
    fired = []
    handle = scheduler.schedule(120, fired.append, label='turn:ABCD:3')

    sleeps = []

    def sleep_then_cancel(seconds):
        sleeps.append(seconds)
        handle.cancel()

    sio.sleep = sleep_then_cancel
    sio.run_all()
    assert sleeps == [1.0]
    assert fired == []
