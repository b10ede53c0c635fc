"""Per-device supervisor for the ffmpeg transcode subprocess."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Protocol

from onvifgate.errors import SubprocessError
from onvifgate.models.enums import DesiredState, QualityTier, TranscodeState
from onvifgate.transcode.plan import TranscodePlan
from onvifgate.transcode.utils import _format_cmd, _redact_cmd, _redact_rtsp_url

logger = logging.getLogger(__name__)

_STDERR_TAIL_LINES = 20


class TranscodeProcess(Protocol):
    """The subset of ``asyncio.subprocess.Process`` the supervisor uses."""

    pid: int

    @property
    def returncode(self) -> int | None: ...

    @property
    def stderr(self) -> asyncio.StreamReader | None: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


SpawnFn = Callable[..., Awaitable[TranscodeProcess]]
PlanBuilder = Callable[[str | None, QualityTier], TranscodePlan]


async def spawn_ffmpeg(binary: str, *args: str) -> TranscodeProcess:
    return await asyncio.create_subprocess_exec(
        binary,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )


class TranscodeSupervisor:
    """Starts, restarts-on-exit and tears down one device's ffmpeg process.

    States: ``IDLE`` (no process), ``RUNNING`` (process alive) and
    ``RESTARTING`` (process exited while still wanted; relaunch in progress).

    ``start()`` enables the desired state and launches; ``stop()`` disables
    it. While enabled, every exit (any return code) relaunches immediately
    with a freshly built plan. ``close()`` is terminal: the desired state is
    forced to disabled and later ``start()`` calls are ignored.

    All transitions run under one lock so a stop+start cycle can never
    overlap with another launch.
    """

    def __init__(
        self,
        *,
        device_id: str,
        binary: str,
        plan_builder: PlanBuilder,
        profile_name: str | None = None,
        quality: QualityTier = QualityTier.STANDARD,
        spawn: SpawnFn = spawn_ffmpeg,
        kill_timeout_s: float = 5.0,
        spawn_retry_s: float = 5.0,
    ) -> None:
        self._device_id = device_id
        self._binary = binary
        self._plan_builder = plan_builder
        self._profile_name = profile_name
        self._quality = quality
        self._spawn = spawn
        self._kill_timeout_s = kill_timeout_s
        self._spawn_retry_s = spawn_retry_s

        self._lock = asyncio.Lock()
        self._state = TranscodeState.IDLE
        self._desired_state = DesiredState.DISABLED
        self._closed = False
        self._process: TranscodeProcess | None = None
        self._plan: TranscodePlan | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._launch_count = 0
        self._log_extra = {"camera_name": device_id}

    @property
    def state(self) -> TranscodeState:
        return self._state

    @property
    def desired_state(self) -> DesiredState:
        return self._desired_state

    @property
    def profile_name(self) -> str | None:
        return self._profile_name

    @property
    def quality(self) -> QualityTier:
        return self._quality

    @property
    def plan(self) -> TranscodePlan | None:
        """Plan of the most recent launch."""
        return self._plan

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def launch_count(self) -> int:
        return self._launch_count

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Enable the desired state and launch unless already running."""
        async with self._lock:
            await self._start_locked()

    async def stop(self) -> None:
        """Disable the desired state and terminate the process."""
        async with self._lock:
            self._stop_locked()

    async def select_profile(self, profile_name: str | None) -> None:
        """Record the profile; restart once if a transcode is wanted."""
        async with self._lock:
            if profile_name == self._profile_name:
                return
            self._profile_name = profile_name
            await self._restart_if_enabled_locked()

    async def set_quality(self, quality: QualityTier) -> None:
        """Record the quality tier; restart once if a transcode is wanted."""
        async with self._lock:
            if quality == self._quality:
                return
            self._quality = quality
            await self._restart_if_enabled_locked()

    async def close(self) -> None:
        """Stop permanently and wait for terminated processes to be reaped."""
        async with self._lock:
            self._closed = True
            self._stop_locked()
            pending = list(self._background)
        if pending:
            await asyncio.wait(pending)

    async def _start_locked(self) -> None:
        if self._closed:
            logger.debug("Ignoring start for closed supervisor", extra=self._log_extra)
            return
        self._desired_state = DesiredState.ENABLED
        if self._process is not None:
            return
        await self._launch_locked()

    def _stop_locked(self) -> None:
        self._desired_state = DesiredState.DISABLED
        self._cancel_retry()

        # Detach the exit watcher before signalling so the exit cannot
        # trigger a relaunch.
        watch_task = self._watch_task
        self._watch_task = None
        if watch_task is not None and not watch_task.done():
            watch_task.cancel()

        process = self._process
        self._process = None
        self._state = TranscodeState.IDLE
        if process is None:
            return

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            self._track(asyncio.create_task(self._reap(process)))
        logger.info("Stopped transcode (pid=%s)", process.pid, extra=self._log_extra)

    async def _restart_if_enabled_locked(self) -> None:
        if self._desired_state is not DesiredState.ENABLED:
            return
        self._stop_locked()
        await self._start_locked()

    async def _launch_locked(self) -> None:
        if self._desired_state is not DesiredState.ENABLED or self._closed:
            self._state = TranscodeState.IDLE
            return

        try:
            plan = self._plan_builder(self._profile_name, self._quality)
            plan.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            self._launch_failed(SubprocessError(self._device_id, f"Cannot build transcode plan: {exc}", exc))
            return

        try:
            process = await self._spawn(self._binary, *plan.args)
        except Exception as exc:
            self._launch_failed(SubprocessError(self._device_id, f"Failed to spawn {self._binary}: {exc}", exc))
            return

        self._plan = plan
        self._process = process
        self._state = TranscodeState.RUNNING
        self._launch_count += 1
        self._stderr_tail.clear()
        self._watch_task = asyncio.create_task(self._watch(process))
        if process.stderr is not None:
            self._track(asyncio.create_task(self._read_stderr(process.stderr, plan.input_url)))

        logger.info(
            "Started transcode (pid=%s plan=%s)",
            process.pid,
            plan.plan_id(),
            extra=self._log_extra,
        )
        logger.debug(
            "Transcode command: %s",
            _format_cmd(_redact_cmd(plan.command(self._binary))),
            extra=self._log_extra,
        )

    def _launch_failed(self, error: SubprocessError) -> None:
        self._process = None
        self._state = TranscodeState.IDLE
        logger.error("%s", error, exc_info=error.cause, extra=self._log_extra)
        if self._desired_state is DesiredState.ENABLED and not self._closed:
            self._cancel_retry()
            self._retry_task = asyncio.create_task(self._retry_after_delay())

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self._spawn_retry_s)
        async with self._lock:
            if self._retry_task is asyncio.current_task():
                self._retry_task = None
            if self._process is None and self._desired_state is DesiredState.ENABLED:
                await self._launch_locked()

    async def _watch(self, process: TranscodeProcess) -> None:
        returncode = await process.wait()
        async with self._lock:
            if self._process is not process:
                return
            self._process = None
            self._watch_task = None

            if self._desired_state is not DesiredState.ENABLED or self._closed:
                self._state = TranscodeState.IDLE
                logger.info(
                    "Transcode exited (pid=%s rc=%s)", process.pid, returncode, extra=self._log_extra
                )
                return

            self._state = TranscodeState.RESTARTING
            logger.warning(
                "Transcode exited unexpectedly (pid=%s rc=%s); restarting",
                process.pid,
                returncode,
                extra=self._log_extra,
            )
            if self._stderr_tail:
                logger.warning(
                    "Transcode stderr tail:\n%s",
                    "\n".join(self._stderr_tail),
                    extra=self._log_extra,
                )
            await self._launch_locked()

    async def _read_stderr(self, stream: asyncio.StreamReader, input_url: str) -> None:
        redacted_url = _redact_rtsp_url(input_url)
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode(errors="replace").rstrip().replace(input_url, redacted_url)
            if text:
                self._stderr_tail.append(text)
                logger.debug("ffmpeg: %s", text, extra=self._log_extra)

    async def _reap(self, process: TranscodeProcess) -> None:
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Transcode did not exit after SIGTERM; killing (pid=%s)",
                process.pid,
                extra=self._log_extra,
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass

    def _cancel_retry(self) -> None:
        retry_task = self._retry_task
        self._retry_task = None
        if retry_task is not None and not retry_task.done() and retry_task is not asyncio.current_task():
            retry_task.cancel()

    def _track(self, task: asyncio.Task[None]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
