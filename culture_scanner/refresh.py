"""
Background refresh loop for the market dashboard.

One loop instance owns the Snapshot Store and the weight/limit/interval
settings. Each tick fetches the market array once, runs it through
normalize -> score -> rank, computes deltas against the previous tick and
publishes the result. Ticks never overlap; a failed tick leaves the last
published snapshot in place and the next tick is armed at the same interval.
"""
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config import CONFIG, coerce_interval, coerce_limit, coerce_weight
from .market_fetch import UpstreamUnavailable
from .ranking import Snapshot, build_snapshot
from .snapshot_store import MarketDelta, SnapshotStore

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class RefreshSettings:
    volume_weight: float = 1.0
    noise_weight: float = 1.0
    limit: int = 50
    interval: float = 60.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RefreshSettings":
        return cls(
            volume_weight=coerce_weight(config.get('DEFAULT_VOLUME_WEIGHT')),
            noise_weight=coerce_weight(config.get('DEFAULT_NOISE_WEIGHT')),
            limit=coerce_limit(config.get('DEFAULT_LIMIT')),
            interval=coerce_interval(config.get('REFRESH_INTERVAL_SECONDS'), 60.0),
        )


@dataclass(frozen=True)
class PublishedSnapshot:
    """Immutable result of one successful tick, handed to the presentation layer."""
    snapshot: Snapshot
    deltas: Tuple[MarketDelta, ...]
    settings: RefreshSettings

    @property
    def captured_at(self) -> float:
        return self.snapshot.captured_at


@dataclass(frozen=True)
class RefreshError:
    error: str
    kind: str
    occurred_at: float
    status_code: Optional[int] = None


@dataclass
class RefreshStats:
    cycles: int = 0
    successes: int = 0
    failures: int = 0
    discarded: int = 0
    skipped: int = 0
    last_fetch_duration_ms: float = 0.0
    last_success_time: Optional[float] = None
    last_failure_time: Optional[float] = None
    durations_ms: List[float] = field(default_factory=list)


_DURATIONS_MAX = 200
_UNSET = object()


class RefreshLoop:
    """
    Explicit start/stop polling task.

    ``fetch`` returns the raw market array or raises (``UpstreamUnavailable``
    for expected upstream failures). ``clock`` and ``sleep`` default to wall
    time and an interruptible wait; tests inject a virtual clock instead.
    """

    def __init__(
        self,
        fetch: Callable[[], Sequence[Any]],
        settings: Optional[RefreshSettings] = None,
        store: Optional[SnapshotStore] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        delta_epsilon: Optional[float] = None,
    ):
        self._fetch = fetch
        self._settings = settings or RefreshSettings.from_config(CONFIG)
        self.store = store or SnapshotStore()
        self._now = clock or time.time
        # replaced on every start(); each run_forever thread watches its own event
        self._stop_event = threading.Event()
        self._sleep = sleep
        self.delta_epsilon = CONFIG['DELTA_EPSILON'] if delta_epsilon is None else delta_epsilon

        self._settings_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._generation = 0
        self._thread: Optional[threading.Thread] = None
        self._subscribers: List[Callable[[Any], None]] = []

        self.state = RefreshState.IDLE
        self.last_outcome: Optional[RefreshState] = None
        self.latest: Optional[PublishedSnapshot] = None
        self.last_error: Optional[RefreshError] = None
        self.next_tick_at: Optional[float] = None
        self.stats = RefreshStats()

    # ---------- settings ----------
    @property
    def settings(self) -> RefreshSettings:
        return self._settings

    def configure(self, volume_weight=None, noise_weight=None, limit=None, interval=None) -> RefreshSettings:
        """Replace settings; picked up by the next tick, never the running one."""
        with self._settings_lock:
            current = self._settings
            updated = replace(
                current,
                volume_weight=current.volume_weight if volume_weight is None
                else coerce_weight(volume_weight, current.volume_weight),
                noise_weight=current.noise_weight if noise_weight is None
                else coerce_weight(noise_weight, current.noise_weight),
                limit=current.limit if limit is None else coerce_limit(limit, current.limit),
                interval=current.interval if interval is None
                else coerce_interval(interval, current.interval),
            )
            self._settings = updated
        if updated != current:
            logger.info("refresh.configured %s", updated, extra={'event': 'configured'})
        return updated

    # ---------- publishing ----------
    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register a listener for PublishedSnapshot / RefreshError events."""
        self._subscribers.append(callback)

        def _unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return _unsubscribe

    def _publish(self, event) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("refresh.subscriber_error")

    # ---------- one tick ----------
    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._stop_event.is_set()

    def run_cycle(self) -> Optional[RefreshState]:
        """Run one fetch -> transform -> publish cycle.

        Returns SUCCESS or FAILURE, or None when the cycle was skipped
        (another one in flight) or its result was discarded after stop().
        """
        if not self._cycle_lock.acquire(blocking=False):
            self.stats.skipped += 1
            logger.info("refresh.cycle_skipped reason=in_flight", extra={'event': 'cycle_skipped'})
            return None
        try:
            generation = self._generation
            settings = self._settings
            self.state = RefreshState.FETCHING
            self.stats.cycles += 1
            t0 = self._now()
            try:
                raw = self._fetch()
                error = None
            except UpstreamUnavailable as e:
                raw, error = None, e
            except Exception as e:
                logger.exception("refresh.fetch_crashed")
                raw, error = None, UpstreamUnavailable(f"{type(e).__name__}: {e}")
            self._record_duration((self._now() - t0) * 1000.0)

            if not self._is_current(generation):
                self.stats.discarded += 1
                logger.info("refresh.result_discarded generation=%d", generation,
                            extra={'event': 'result_discarded'})
                return None
            if error is not None:
                return self._on_failure(error)
            return self._on_success(raw, settings)
        finally:
            self.state = RefreshState.IDLE
            self._cycle_lock.release()

    def _on_success(self, raw: Sequence[Any], settings: RefreshSettings) -> RefreshState:
        snapshot = build_snapshot(
            raw,
            volume_weight=settings.volume_weight,
            noise_weight=settings.noise_weight,
            limit=settings.limit,
            captured_at=self._now(),
        )
        deltas = self.store.apply(snapshot)
        published = PublishedSnapshot(snapshot=snapshot, deltas=deltas, settings=settings)
        # Single reference swap: readers see the old or the new snapshot, never a mix
        self.latest = published
        self.last_error = None
        self.last_outcome = RefreshState.SUCCESS
        self.stats.successes += 1
        self.stats.last_success_time = snapshot.captured_at
        logger.info("refresh.success markets=%d ranked=%d", len(raw), len(snapshot),
                    extra={'event': 'refresh_success'})
        self._publish(published)
        return RefreshState.SUCCESS

    def _on_failure(self, error: UpstreamUnavailable) -> RefreshState:
        now = self._now()
        self.last_error = RefreshError(
            error=str(error),
            kind=type(error).__name__,
            occurred_at=now,
            status_code=getattr(error, 'status_code', None),
        )
        self.last_outcome = RefreshState.FAILURE
        self.stats.failures += 1
        self.stats.last_failure_time = now
        logger.warning("refresh.failure %s", error, extra={'event': 'refresh_failure'})
        self._publish(self.last_error)
        return RefreshState.FAILURE

    def _record_duration(self, ms: float) -> None:
        self.stats.last_fetch_duration_ms = round(ms, 2)
        self.stats.durations_ms.append(self.stats.last_fetch_duration_ms)
        if len(self.stats.durations_ms) > _DURATIONS_MAX:
            del self.stats.durations_ms[:-_DURATIONS_MAX]

    # ---------- scheduling ----------
    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Tick at a fixed interval measured from each tick's start until stop().

        ``stop_event`` is the event of the run this call belongs to; once it is
        set this call schedules nothing more, even if the loop was restarted.
        """
        stop_event = stop_event or self._stop_event
        sleep = self._sleep or stop_event.wait
        logger.info("refresh.loop_started interval=%.1fs", self._settings.interval,
                    extra={'event': 'loop_started'})
        while not stop_event.is_set():
            started = self._now()
            try:
                self.run_cycle()
            except Exception:
                # a broken tick must never end the schedule
                logger.exception("refresh.cycle_crashed")
            if stop_event.is_set():
                break
            interval = self._settings.interval
            self.next_tick_at = started + interval
            sleep(max(0.0, self.next_tick_at - self._now()))
        if stop_event is self._stop_event:
            self.next_tick_at = None
        logger.info("refresh.loop_stopped", extra={'event': 'loop_stopped'})

    def start(self) -> None:
        if self.running and not self._stop_event.is_set():
            return
        # A thread left over from a timed-out stop() keeps the old, already set
        # event and exits after its in-flight fetch.
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self.run_forever, args=(self._stop_event,), name="refresh_loop", daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop scheduling ticks; an in-flight fetch is discarded when it returns."""
        self._generation += 1
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout)
        if thread is not None and not thread.is_alive():
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def status(self, latest: Any = _UNSET) -> Dict[str, Any]:
        """Loop status; pass the ``latest`` already read to keep both views consistent."""
        if latest is _UNSET:
            latest = self.latest
        err = self.last_error
        s = self._settings
        return {
            'state': self.state.value,
            'last_outcome': self.last_outcome.value if self.last_outcome else None,
            'interval_seconds': s.interval,
            'captured_at': latest.captured_at if latest else None,
            'next_tick_at': self.next_tick_at,
            'last_error': err.error if err else None,
            'error_kind': err.kind if err else None,
            'error_at': err.occurred_at if err else None,
            'cycles': self.stats.cycles,
            'running': self.running,
        }
