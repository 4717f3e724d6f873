"""Runs queued HTTP transfers in the background, a few at a time."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Optional

from .curl import Curl, CurlError

logger = logging.getLogger(__name__)


class Curler:
    """Performs queued ``Curl`` transfers with bounded concurrency.

    Call ``start()`` to run the handler thread and ``queue()`` to add
    transfers. Each transfer's ``callback`` is called from the handler
    thread when it completes, whether it succeeded or not. ``stop()``
    finishes everything queued first; ``terminate()`` quits at once.
    Follow either with ``join()``.
    """

    def __init__(self, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._condition = threading.Condition()
        self._queue: Deque[Curl] = deque()
        self._done: Deque[Curl] = deque()
        self._active = 0
        self._stop = False
        self._terminate = False
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        """True while the handler thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the handler thread; does nothing if it is already running."""
        if self.running:
            return
        with self._condition:
            self._stop = False
            self._terminate = False
        self._thread = threading.Thread(
            target=self._handler, name="curler", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Let the handler finish every queued transfer and then quit."""
        with self._condition:
            self._stop = True
            self._condition.notify_all()

    def terminate(self) -> None:
        """Make the handler quit without waiting for queued transfers."""
        with self._condition:
            self._terminate = True
            self._condition.notify_all()

    def join(self) -> None:
        """Block until the handler thread has finished."""
        if self._thread is not None:
            self._thread.join()

    def queue(self, curl: Curl) -> None:
        """Prepare a transfer and queue it for performing."""
        curl.prepare()
        with self._condition:
            self._queue.append(curl)
            self._condition.notify_all()

    def _transfer(self, curl: Curl) -> None:
        try:
            curl.perform()
        except CurlError as error:
            logger.warning("Curl transfer failed: %s", error)
        except Exception:
            logger.exception("Unexpected failure in curl transfer")
        with self._condition:
            self._done.append(curl)
            self._condition.notify_all()

    def _launch_queued(self) -> None:
        while self._queue and self._active < self.concurrency:
            curl = self._queue.popleft()
            self._active += 1
            threading.Thread(
                target=self._transfer, args=(curl,), daemon=True
            ).start()

    def _handler(self) -> None:
        with self._condition:
            while not self._terminate:
                self._launch_queued()
                if self._done:
                    curl = self._done.popleft()
                    self._active -= 1
                    self._condition.release()
                    try:
                        if curl.callback is not None:
                            curl.callback()
                    except Exception:
                        logger.exception("Curl callback raised")
                    finally:
                        self._condition.acquire()
                    continue
                if self._stop and not self._queue and self._active == 0:
                    break
                self._condition.wait()