"""
Runs blocking work on a background daemon thread so control calls never block the caller.
"""
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """ Repeatedly runs loop() on a background thread until stopped.
        Exceptions escaping loop() are logged and the loop carries on.
        The background thread is registered as a daemon.
    """

    def __init__(self, fn: Callable=None, args=(), name=None, log=logger):
        """
        :param fn the function to run each iteration, when loop() is not overridden
        :param args arguments to pass to fn
        :param name the thread name
        """
        self.fn = fn
        self.args = args
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log
        self._start_lock = threading.Lock()

    def start(self):
        """ Starts the background thread. Calls after the first are ignored. """
        with self._start_lock:
            if self.background_thread is not None:
                return False
            t = threading.Thread(target=self._run, name=self.name, daemon=True)
            self.background_thread = t
        t.start()
        return True

    @property
    def started(self):
        return self.background_thread is not None

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        self.logger.info("BEGIN %s" % self.name)
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.info("END %s" % self.name)

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            callme()
        except Exception as e:
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""
        pass

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """
        pass

    def running(self):
        return not self.stop_event.is_set()

    def signal_stop(self):
        """ asks the loop to exit after the current iteration, without waiting for it """
        self.stop_event.set()

    def stop(self, timeout=None):
        """ signals the loop to stop and waits for the thread to finish, unless called from the loop itself """
        self.signal_stop()
        thread = self.background_thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout)

    def join(self, timeout=None):
        thread = self.background_thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True
