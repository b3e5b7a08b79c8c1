"""Daemon module for animebell.

Runs the durable scheduler with its digest and release sweeps as a
single-instance background service.
"""

from animebell.daemon.pid import DaemonAlreadyRunningError, PIDFile
from animebell.daemon.service import (
    AnimeBellDaemon,
    daemonize,
    run_daemon,
)

__all__ = [
    "AnimeBellDaemon",
    "DaemonAlreadyRunningError",
    "PIDFile",
    "daemonize",
    "run_daemon",
]
