"""
Runs the reader and dispatcher of a connection: a function called repeatedly on a daemon thread
until the loop is stopped.
"""
import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class AsyncLoop:
    """ Continually runs a given function on a background thread.
        Exceptions are logged and posted to a given handler
        The background thread is registered as a daemon.
    """

    def __init__(self, fn: Callable = None, args=(), name=None, log=logger):
        """
        :param fn the function to run
        :param args arguments to pass to fn
        :param name the name given to the background thread
        """
        self.fn = fn
        self.args = args
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log
        self._lock = threading.Lock()

    def start(self):
        """
        Starts the background thread. Calling start on a running loop has no effect.
        """
        with self._lock:
            if self.background_thread is None:
                stop_event = self.stop_event = threading.Event()
                t = threading.Thread(target=self._run, args=(stop_event,), name=self.name)
                t.daemon = True
                self.background_thread = t
                t.start()

    @property
    def alive(self) -> bool:
        thread = self.background_thread
        return thread is not None and thread.is_alive()

    def exception_handler(self, e):
        self.logger.exception("unhandled error in %s: %s", self.name, e)

    def _run(self, stop_event=None):
        """ The processing loop for the background thread.
             Invokes the callable for as long as the stop signal is not received.
        """
        while self.running(stop_event):
            self._do(self.loop)
        self.logger.info("background thread %s exiting", self.name)

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            time.sleep(0)
            callme()
        except Exception as e:
            time.sleep(0)
            self.exception_handler(e)

    def loop(self):
        self.fn(*self.args)

    def running(self, stop_event=None):
        return not (stop_event or self.stop_event).is_set()

    def stop(self, timeout=None):
        """
        Signals the loop to stop and waits for the background thread to exit, unless called
        from the background thread itself.
        """
        self.stop_event.set()
        with self._lock:
            thread = self.background_thread
            self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join(timeout)
