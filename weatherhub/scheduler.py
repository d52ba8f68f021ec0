"""
Refresh cache module for the weather aggregation service.

Keeps merged weather warm per coordinate:
- First read for a coordinate performs one synchronous fetch and seeds the cache
- Every cached coordinate then owns one recurring background refresh job
- Failed refreshes keep the previous good data and are counted
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .aggregator import WeatherAggregator
from .config import Settings
from .errors import CacheShutDown
from .locations import Coordinate
from .models import CacheStats, NormalizedWeather

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Live cached result for one coordinate. Mutated only under `lock`."""
    data: NormalizedWeather
    timestamp: float
    coordinate: Coordinate
    job_id: str
    fetch_count: int = 1
    error_count: int = 0
    last_error: Optional[str] = None
    cancelled: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class WeatherCache:
    """
    Keyed cache of merged weather with one background refresh job per key.

    Readers always receive copies; the refresh jobs are the only writers and
    at most one refresh per key is in flight at a time.
    """

    def __init__(
        self,
        aggregator: Optional[WeatherAggregator] = None,
        settings: Optional[Settings] = None,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        self.settings = settings or Settings()
        self.aggregator = aggregator or WeatherAggregator(self.settings)
        self.scheduler = scheduler or BackgroundScheduler()
        self.refresh_interval = self.settings.refresh_interval_minutes

        self._entries: Dict[str, CacheEntry] = {}
        self._warmup_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._is_running = False
        self._shutting_down = False

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, coord: Coordinate) -> Optional[Dict[str, Any]]:
        """Return a snapshot of the cached result, or None. Never fetches."""
        with self._lock:
            entry = self._entries.get(coord.key)
        if entry is None:
            return None
        return self._snapshot(entry)

    def is_cached(self, coord: Coordinate) -> bool:
        with self._lock:
            return coord.key in self._entries

    def locations(self) -> List[Dict[str, Any]]:
        """List cached coordinates with their next scheduled refresh."""
        with self._lock:
            entries = list(self._entries.items())

        result = []
        for key, entry in entries:
            job = self.scheduler.get_job(entry.job_id) if self._is_running else None
            result.append({
                "key": key,
                "lat": entry.coordinate.lat,
                "lon": entry.coordinate.lon,
                "next_refresh": job.next_run_time.isoformat() if job and job.next_run_time else None,
            })
        return result

    def stats(self) -> CacheStats:
        """Aggregate statistics computed from the live entries."""
        with self._lock:
            entries = list(self._entries.values())

        now = time.time()
        total_fetches = total_errors = 0
        total_age = 0.0
        for entry in entries:
            with entry.lock:
                total_fetches += entry.fetch_count
                total_errors += entry.error_count
                total_age += (now - entry.timestamp) * 1000

        return CacheStats(
            location_count=len(entries),
            total_fetches=total_fetches,
            total_errors=total_errors,
            average_age_ms=total_age / len(entries) if entries else 0.0,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def ensure(self, coord: Coordinate) -> Dict[str, Any]:
        """
        Return cached weather for a coordinate, seeding the cache on first use.

        Raises:
            AllSourcesFailed: first fetch for the coordinate produced no data
            CacheShutDown: the cache was shut down before or during the first fetch
        """
        cached = self.get(coord)
        if cached is not None:
            return cached

        with self._warmup_lock(coord.key):
            cached = self.get(coord)
            if cached is not None:
                return cached
            if self._shutting_down:
                raise CacheShutDown("Weather cache is shut down")

            logger.info(f"Starting weather data caching for coordinates {coord}")
            data = self.aggregator.fetch(coord)

            entry = CacheEntry(
                data=data,
                timestamp=time.time(),
                coordinate=coord,
                job_id=f"weather-refresh:{coord.key}",
            )
            with self._lock:
                if self._shutting_down:
                    logger.info(f"Discarding first fetch for {coord.key}: cache shut down during fetch")
                    raise CacheShutDown("Weather cache is shut down")
                self._entries[coord.key] = entry
                self._schedule(entry)

            logger.info(
                f"Weather data caching started for {coord.key} "
                f"with {self.refresh_interval}min refresh interval"
            )
            return self._snapshot(entry)

    def refresh(self, key: str) -> None:
        """Background job body: refetch one key and commit unless cancelled."""
        if self._shutting_down:
            return
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            logger.error(f"Cache entry not found for refresh: {key}")
            return

        logger.info(f"Refreshing weather data cache for {key}")
        try:
            data = self.aggregator.fetch(entry.coordinate)
        except Exception as e:
            with entry.lock:
                if entry.cancelled or self._shutting_down:
                    return
                entry.error_count += 1
                entry.last_error = str(e)
                error_count = entry.error_count
            logger.error(f"Cache refresh failed for {key} (error #{error_count}): {e}")
            return

        with entry.lock:
            if entry.cancelled or self._shutting_down:
                logger.info(f"Discarding refresh result for stopped key {key}")
                return
            entry.data = data
            entry.timestamp = time.time()
            entry.fetch_count += 1
            entry.last_error = None
            fetch_count = entry.fetch_count
        logger.info(f"Weather data cache refreshed successfully for {key} (fetch #{fetch_count})")

    def stop(self, coord: Coordinate) -> None:
        """Cancel the refresh job for a coordinate and evict it. Idempotent."""
        with self._lock:
            entry = self._entries.pop(coord.key, None)
            self._warmup_locks.pop(coord.key, None)
        if entry is None:
            return

        with entry.lock:
            entry.cancelled = True
        self._remove_job(entry.job_id)
        logger.info(f"Stopped weather data caching for {coord.key}")

    def shutdown(self) -> None:
        """Cancel every refresh job and clear all entries."""
        logger.info("Shutting down weather cache...")

        with self._lock:
            self._shutting_down = True
            entries = list(self._entries.values())
            self._entries.clear()
            self._warmup_locks.clear()
            was_running = self._is_running
            self._is_running = False

        for entry in entries:
            with entry.lock:
                entry.cancelled = True

        if was_running:
            self.scheduler.shutdown(wait=True)

        self.aggregator.close()
        logger.info(f"Weather cache shutdown complete ({len(entries)} locations released)")

    @property
    def is_running(self) -> bool:
        return self._is_running

    # =========================================================================
    # Helpers
    # =========================================================================

    def _warmup_lock(self, key: str) -> threading.Lock:
        with self._lock:
            return self._warmup_locks.setdefault(key, threading.Lock())

    def _start_scheduler(self) -> None:
        """Start the scheduler once. Caller holds self._lock."""
        if self._shutting_down:
            raise CacheShutDown("Weather cache is shut down")
        if self._is_running:
            return
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Refresh scheduler started: every {self.refresh_interval}min per location")

    def _schedule(self, entry: CacheEntry) -> None:
        """Register the refresh job for an entry. Caller holds self._lock."""
        self._start_scheduler()
        self.scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(minutes=self.refresh_interval),
            args=[entry.coordinate.key],
            id=entry.job_id,
            name=f"Weather refresh {entry.coordinate.key}",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    def _remove_job(self, job_id: str) -> None:
        if not self._is_running:
            return
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def _snapshot(self, entry: CacheEntry) -> Dict[str, Any]:
        with entry.lock:
            snapshot = entry.data.to_dict()
            timestamp = entry.timestamp
            meta = {
                "fetch_count": entry.fetch_count,
                "error_count": entry.error_count,
                "last_error": entry.last_error,
            }
        snapshot["cache"] = {
            "cached": True,
            "timestamp": datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(),
            "age_ms": int((time.time() - timestamp) * 1000),
            **meta,
        }
        return snapshot
