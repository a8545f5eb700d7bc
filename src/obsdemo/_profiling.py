"""Continuous profiling agent: Pyroscope sampler with a one-shot lifecycle."""

from __future__ import annotations

import logging
import threading
import urllib.error
import urllib.request
from typing import TYPE_CHECKING

import pyroscope

from obsdemo._errors import ProfilingError
from obsdemo._types import ProfilerState

if TYPE_CHECKING:
    from obsdemo._config import ProfilingConfig

logger = logging.getLogger("obsdemo.profiling")


def probe_backend(server_address: str, timeout_s: float) -> None:
    """Raise ProfilingError unless the backend answers HTTP at all.

    Any HTTP status counts as reachable; only transport failures do not.
    """
    try:
        with urllib.request.urlopen(server_address, timeout=timeout_s):  # noqa: S310
            pass
    except urllib.error.HTTPError:
        return
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise ProfilingError(f"profiling backend {server_address} is unreachable: {exc}") from exc


class StoppedProfiler:
    """Returned by :meth:`ProfilingAgent.stop`; flushes captured profiles once."""

    def __init__(self, application_name: str) -> None:
        self._application_name = application_name
        self._flushed = False

    @property
    def flushed(self) -> bool:
        return self._flushed

    def shutdown(self) -> bool:
        """Flush pending profile data. Failures are logged, never raised."""
        if self._flushed:
            return True
        self._flushed = True
        try:
            flushed = pyroscope.shutdown()
        except Exception:
            logger.warning("Failed to flush profiles for %s", self._application_name, exc_info=True)
            return False
        if flushed is False:
            logger.warning("Failed to flush profiles for %s", self._application_name)
            return False
        logger.info("Pyroscope profiling stopped")
        return True


class ProfilingAgent:
    """Sampling profiler driven STOPPED → RUNNING → TERMINATED, never restarted.

    Start it before the listener accepts connections so startup work is
    profiled too; stop it after the listener has closed.
    """

    def __init__(self, config: ProfilingConfig) -> None:
        self.config = config
        self._state = ProfilerState.STOPPED
        self._lock = threading.Lock()

    @property
    def state(self) -> ProfilerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ProfilerState.RUNNING

    def start(self) -> None:
        """Probe the backend and begin sampling. Failure is fatal to startup."""
        with self._lock:
            if self._state is not ProfilerState.STOPPED:
                raise ProfilingError(f"cannot start profiler in state {self._state.value}")

            probe_backend(self.config.server_address, self.config.probe_timeout_s)
            try:
                pyroscope.configure(
                    application_name=self.config.application_name,
                    server_address=self.config.server_address,
                    sample_rate=self.config.sample_rate,
                    tags=dict(self.config.tags),
                    detect_subprocesses=False,
                    oncpu=True,
                    gil_only=True,
                    enable_logging=False,
                )
            except Exception as exc:
                raise ProfilingError(f"failed to start Pyroscope agent: {exc}") from exc
            self._state = ProfilerState.RUNNING

        logger.info(
            "Pyroscope continuous profiling started (%s @ %d Hz)",
            self.config.server_address,
            self.config.sample_rate,
        )

    def stop(self) -> StoppedProfiler:
        """Mark the agent terminated.

        Sampling continues until ``shutdown()`` on the result drops the agent,
        which halts sampling and flushes pending profiles.
        """
        with self._lock:
            if self._state is not ProfilerState.RUNNING:
                raise ProfilingError(f"cannot stop profiler in state {self._state.value}")
            self._state = ProfilerState.TERMINATED
        return StoppedProfiler(self.config.application_name)
