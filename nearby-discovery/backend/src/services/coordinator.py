"""Owner of one discovery screen's filter state and query lifecycle.

All state changes happen on the event loop thread. Edits to server-side
filters are debounced into a single query; every issued query gets a fresh
sequence number and only the response carrying the latest one is applied, so
a slow early request can never overwrite a newer result. ``open_now_only`` is
evaluated locally and only re-projects the last raw result set.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set, Tuple, Union

from loguru import logger

from config import Configuration
from models import (
    Amenity,
    DiscoverySnapshot,
    FilterState,
    QueryStatus,
    RawEstablishment,
    SearchCriteria,
    ViewModel,
)
from services.projector import project
from services.search import SearchError, build_criteria


SearchResult = Sequence[RawEstablishment]
SearchFn = Callable[[SearchCriteria], Union[SearchResult, Awaitable[SearchResult]]]
Listener = Callable[[DiscoverySnapshot], None]
Clock = Callable[[], datetime]


class DiscoveryCoordinator:
    def __init__(
        self,
        cfg: Configuration,
        search: SearchFn,
        *,
        filters: Optional[FilterState] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.cfg = cfg
        self._search = search
        self._filters = filters or FilterState()
        self._clock: Clock = clock or (lambda: datetime.now(cfg.tzinfo()))

        self._raw: Tuple[RawEstablishment, ...] = ()
        self._view = ViewModel()
        self._status = QueryStatus.IDLE
        self._last_error: Optional[str] = None
        self._seq = 0

        self._timer: Optional[asyncio.TimerHandle] = None
        self._ticker: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []
        self._closed = False

        self.queries_issued = 0
        self.stale_responses = 0
        self.last_criteria: Optional[SearchCriteria] = None

    # -- read side ---------------------------------------------------------

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def raw(self) -> Tuple[RawEstablishment, ...]:
        return self._raw

    @property
    def view(self) -> ViewModel:
        return self._view

    @property
    def status(self) -> QueryStatus:
        return self._status

    @property
    def is_loading(self) -> bool:
        return self._status is QueryStatus.PENDING

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def debounce_pending(self) -> bool:
        return self._timer is not None

    def snapshot(self) -> DiscoverySnapshot:
        return DiscoverySnapshot(
            filters=self._filters,
            view=self._view,
            status=self._status,
            is_loading=self.is_loading,
            last_error=self._last_error,
            request_seq=self._seq,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- user actions ------------------------------------------------------

    def start(self) -> None:
        """Issue the initial query right away and start the clock tick."""
        if self._closed:
            return
        self._issue()
        interval = self.cfg.clock_refresh_seconds
        if interval and interval > 0 and self._ticker is None:
            self._ticker = asyncio.get_running_loop().create_task(self._tick(interval))

    def set_filters(self, **changes: Any) -> FilterState:
        if self._closed:
            return self._filters
        updated = self._filters.with_changes(**changes)
        if updated == self._filters:
            return updated

        server_changed = updated.server_key() != self._filters.server_key()
        self._filters = updated
        if server_changed:
            self._schedule()
        self._reproject()
        self._publish()
        return updated

    def set_search_text(self, text: str) -> FilterState:
        return self.set_filters(search_text=text)

    def set_amenity(self, amenity: Union[Amenity, str]) -> FilterState:
        return self.set_filters(amenity=amenity)

    def set_min_rating(self, rating: float) -> FilterState:
        return self.set_filters(min_rating=rating)

    def set_popular_only(self, enabled: bool) -> FilterState:
        return self.set_filters(popular_only=enabled)

    def set_open_now_only(self, enabled: bool) -> FilterState:
        return self.set_filters(open_now_only=enabled)

    def retry(self) -> None:
        if self._closed:
            return
        self._cancel_timer()
        self._issue()

    def refresh_clock(self) -> None:
        if self._closed:
            return
        self._reproject()
        self._publish()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        for task in list(self._tasks):
            task.cancel()
        self._listeners.clear()

    # -- transitions -------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.cfg.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._issue()

    def _issue(self) -> None:
        self._seq += 1
        seq = self._seq
        criteria = build_criteria(self._filters, self.cfg)
        self.last_criteria = criteria
        self.queries_issued += 1
        self._status = QueryStatus.PENDING
        logger.debug("query seq={} text={!r} amenity={} min_rating={}", seq, criteria.text, criteria.amenity, criteria.min_rating)

        task = asyncio.get_running_loop().create_task(self._run(seq, criteria))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._publish()

    async def _call_search(self, criteria: SearchCriteria) -> Tuple[RawEstablishment, ...]:
        if inspect.iscoroutinefunction(self._search):
            result = self._search(criteria)
        else:
            result = await asyncio.to_thread(self._search, criteria)
        # async __call__ objects are not coroutine functions
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            raise TypeError("search returned no result")
        return tuple(result)

    async def _run(self, seq: int, criteria: SearchCriteria) -> None:
        try:
            result = await self._call_search(criteria)
        except SearchError as exc:
            self._apply_failure(seq, exc.message)
            return
        except Exception as exc:
            logger.exception("search task failed: {}", exc)
            self._apply_failure(seq, str(exc) or exc.__class__.__name__)
            return
        self._apply_result(seq, result)

    def _accepts(self, seq: int) -> bool:
        if self._closed or seq != self._seq:
            self.stale_responses += 1
            logger.debug("discarding stale response seq={} current={} closed={}", seq, self._seq, self._closed)
            return False
        return True

    def _apply_result(self, seq: int, result: Tuple[RawEstablishment, ...]) -> None:
        if not self._accepts(seq):
            return
        self._raw = result
        self._status = QueryStatus.SETTLED
        self._last_error = None
        self._reproject()
        self._publish()

    def _apply_failure(self, seq: int, message: str) -> None:
        if not self._accepts(seq):
            return
        # keep the last good raw set
        self._status = QueryStatus.FAILED
        self._last_error = message
        self._publish()

    def _reproject(self) -> None:
        self._view = project(self._raw, self._filters.open_now_only, self._clock())

    def _publish(self) -> None:
        if self._closed:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("snapshot listener failed")

    async def _tick(self, interval: float) -> None:
        while not self._closed:
            await asyncio.sleep(interval)
            self.refresh_clock()
