"""
One long-lived event loop for synchronous front ends.

Streamlit reruns the script on a new thread per session interaction.
Cached components (the Gemini client, the agent loop) must keep running
on the same loop, so every coroutine is submitted to a single loop that
lives in a daemon thread.
"""

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """An asyncio event loop running forever in its own thread."""

    def __init__(self, name: str = "dompetku-loop"):
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._start_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._start_lock:
            if self.running:
                return
            self._ready.clear()
            self._thread = threading.Thread(target=self._run_loop, name=self._name, daemon=True)
            self._thread.start()
        self._ready.wait()

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()
            logger.info("transport.loop_stopped", name=self._name)

    def submit(self, coro: Coroutine[Any, Any, T]) -> "Future[T]":
        """Schedule a coroutine on the background loop without waiting."""
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the background loop and wait for its result."""
        return self.submit(coro).result(timeout=timeout)

    def stop(self) -> None:
        loop = self._loop
        if loop is None or not self.running:
            return
        loop.call_soon_threadsafe(loop.stop)
        self._thread.join()
