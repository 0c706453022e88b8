# exhaustive.py – depth-first enumeration of every glass stack, run off-process
#
# The worker talks to its host only through a FIFO queue of messages:
#   Progress      every PROGRESS_EVERY visited nodes
#   LengthResult  whenever a length gets a strictly better stack
#   Done          always last, even if the enumeration blew up

from __future__ import annotations

import logging
import multiprocessing
import queue as queue_mod
import threading
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

import numpy as np

from .blend import blend_step_array
from .colorimetry import delta_e_rgb_many, hex_to_rgb, rgb_to_hex
from .palette import GLASS_COLORS, MAX_HEIGHT, PROGRESS_EVERY, RGB
from .search import Candidate, build_frontier

log = logging.getLogger(__name__)


# --- messages ----------------------------------------------------------------
@dataclass(frozen=True)
class Progress:
    checked: int
    type: ClassVar[str] = "progress"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "checked": self.checked}


@dataclass(frozen=True)
class LengthResult:
    length: int
    best: Candidate
    type: ClassVar[str] = "lengthResult"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "length": self.length, "best": self.best.to_dict()}


@dataclass(frozen=True)
class Done:
    best_per_length: Dict[int, Candidate]
    checked: int
    type: ClassVar[str] = "done"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "bestPerLength": {
                str(n): c.to_dict() for n, c in sorted(self.best_per_length.items())
            },
            "checked": self.checked,
        }


Message = Union[Progress, LengthResult, Done]
Post = Callable[[Message], None]


@dataclass(frozen=True)
class ExhaustiveRequest:
    target_hex: str
    max_height: int = MAX_HEIGHT
    # (name, rgb) pairs; a plain tuple so the request pickles into the worker
    palette: Optional[Tuple[Tuple[str, RGB], ...]] = None
    cmd: ClassVar[str] = "exhaustive"

    def __post_init__(self) -> None:
        hex_to_rgb(self.target_hex)
        if int(self.max_height) < 1:
            raise ValueError("maxHeight must be ≥ 1")

    @property
    def target(self) -> RGB:
        return hex_to_rgb(self.target_hex)

    def palette_items(self) -> Dict[str, RGB]:
        if self.palette is None:
            return dict(GLASS_COLORS)
        return {name: tuple(int(c) for c in rgb) for name, rgb in self.palette}  # type: ignore[misc]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExhaustiveRequest":
        if data.get("cmd") != cls.cmd:
            raise ValueError(f"unsupported command {data.get('cmd')!r}")
        return cls(
            target_hex=str(data["targetHex"]),
            max_height=int(data.get("maxHeight", MAX_HEIGHT)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"cmd": self.cmd, "maxHeight": self.max_height, "targetHex": self.target_hex}


# --- enumeration -------------------------------------------------------------
CHILD_CACHE_SIZE = 1 << 16


def total_stacks(n_colors: int, max_height: int) -> int:
    """Number of stacks of 1..max_height panes, i.e. the final ``checked``."""
    return sum(n_colors**k for k in range(1, max_height + 1))


def iter_exhaustive(request: ExhaustiveRequest) -> Iterator[Message]:
    """
    Visit every stack of 1..max_height panes in palette order, depth first.

    Messages come out in production order and the last one is always ``Done``.
    The children of a node are blended and scored as one batch; batches are
    memoised per beam colour since many prefixes share one.
    """
    entries = list(request.palette_items().values())
    colors = np.asarray(entries, dtype=np.int64).reshape(-1, 3)
    target = request.target
    max_height = request.max_height
    best: Dict[int, Candidate] = {}
    stack: List[RGB] = []
    checked = 0

    @lru_cache(maxsize=CHILD_CACHE_SIZE)
    def children(acc: Optional[RGB]) -> Tuple[List[RGB], List[float]]:
        if acc is None:
            nxt = colors
        else:
            nxt = blend_step_array(np.asarray(acc, dtype=np.int64), colors)
        dist = delta_e_rgb_many(target, nxt)
        return [(r, g, b) for r, g, b in nxt.tolist()], dist.tolist()

    def walk(acc: Optional[RGB], depth: int) -> Iterator[Message]:
        nonlocal checked
        length = depth + 1
        for rgb, color, dist in zip(entries, *children(acc)):
            stack.append(rgb)
            held = best.get(length)
            if held is None or dist < held.dist:
                best[length] = Candidate(tuple(stack), color, dist)
                yield LengthResult(length, best[length])
            if length < max_height:
                yield from walk(color, length)
            stack.pop()
            checked += 1
            if checked % PROGRESS_EVERY == 0:
                yield Progress(checked)

    started = time.perf_counter()
    log.info(
        "exhaustive search: target=%s maxHeight=%d palette=%d",
        request.target_hex,
        max_height,
        len(entries),
    )
    try:
        yield from walk(None, 0)
    except Exception:
        log.exception("exhaustive search failed after %d stacks", checked)

    log.info(
        "exhaustive search finished: checked %d in %.2fs (%s)",
        checked,
        time.perf_counter() - started,
        children.cache_info(),
    )
    yield Done(dict(best), checked)


def run_exhaustive(request: ExhaustiveRequest, post: Post) -> Done:
    """
    Feed every message of :func:`iter_exhaustive` to ``post``.

    If ``post`` raises, the walk is stopped there and its ``Done`` is still
    posted; only a failure to post ``Done`` itself propagates.
    """
    messages = iter_exhaustive(request)
    msg = next(messages)
    while True:
        try:
            post(msg)
        except Exception as exc:
            if isinstance(msg, Done):
                raise
            msg = messages.throw(exc)
            continue
        if isinstance(msg, Done):
            return msg
        msg = next(messages)


def collect_exhaustive(request: ExhaustiveRequest) -> List[Message]:
    """Run in-process and return every message the worker would have sent."""
    return list(iter_exhaustive(request))


def worker_main(request: ExhaustiveRequest, out_q: Any) -> None:
    """Worker-process entry point; ``out_q`` belongs to this run alone."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_exhaustive(request, out_q.put)


# --- host side ---------------------------------------------------------------
@dataclass
class ExhaustiveSearch:
    """
    Host handle for at most one exhaustive worker at a time.

    ``start`` terminates any previous worker first and gives the new one a
    fresh queue, so nothing a superseded run sent can reach the new run.
    ``poll`` drains the queue and feeds the callbacks.  ``cancel`` kills the
    worker and forgets it; nothing more is reported for that run.

    The handle may be shared between threads: ``start``, ``poll``, ``cancel``
    and ``partial_results`` hold ``lock``, and callers reading several fields
    at once should hold it too.
    """

    on_progress: Optional[Callable[[Progress], None]] = None
    on_length_result: Optional[Callable[[LengthResult], None]] = None
    on_done: Optional[Callable[[Done], None]] = None
    start_method: str = "spawn"

    status: str = field(default="idle", init=False)
    checked: int = field(default=0, init=False)
    best_per_length: Dict[int, Candidate] = field(default_factory=dict, init=False)
    results: List[Candidate] = field(default_factory=list, init=False)
    request: Optional[ExhaustiveRequest] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.lock = threading.RLock()
        self._ctx = multiprocessing.get_context(self.start_method)
        self._process: Any = None
        self._queue: Any = None
        self._run_id = 0

    @property
    def running(self) -> bool:
        return self.status == "running"

    @property
    def finished(self) -> bool:
        return self.status == "done"

    @property
    def run_id(self) -> int:
        return self._run_id

    @property
    def total(self) -> int:
        """Stacks the current run visits in all; 0 before the first run."""
        if self.request is None:
            return 0
        return total_stacks(len(self.request.palette_items()), self.request.max_height)

    @property
    def percent(self) -> float:
        total = self.total
        return 100.0 * self.checked / total if total else 0.0

    def partial_results(self) -> List[Candidate]:
        with self.lock:
            return build_frontier(self.best_per_length, self._max_height())

    def start(
        self,
        target_hex: str,
        max_height: int = MAX_HEIGHT,
        palette: Optional[Mapping[str, RGB]] = None,
    ) -> int:
        request = ExhaustiveRequest(
            target_hex=target_hex,
            max_height=max_height,
            palette=None if palette is None else tuple(palette.items()),
        )
        with self.lock:
            self.cancel()

            self._run_id += 1
            self.request = request
            self.checked = 0
            self.best_per_length = {}
            self.results = []
            self._queue = self._ctx.Queue()
            self._process = self._ctx.Process(
                target=worker_main,
                args=(request, self._queue),
                name=f"beacon-exhaustive-{self._run_id}",
                daemon=True,
            )
            self._process.start()
            self.status = "running"
            log.info("started exhaustive run %d for %s", self._run_id, request.target_hex)
            return self._run_id

    def poll(self, timeout: float = 0.0) -> List[Message]:
        """Handle whatever the worker has sent; block up to ``timeout`` for the first."""
        with self.lock:
            if self._queue is None:
                return []
            handled = self._drain(timeout)
            if self.running and not handled and not self._process.is_alive():
                # the worker flushes its queue before exiting, so look once more
                handled = self._drain(0.0)
                if self.running:
                    log.error("exhaustive worker %d exited without finishing", self._run_id)
                    done = Done(dict(self.best_per_length), self.checked)
                    self._dispatch(done)
                    handled.append(done)
            return handled

    def _drain(self, timeout: float) -> List[Message]:
        handled: List[Message] = []
        wait = timeout
        while self._queue is not None:
            try:
                if wait > 0:
                    msg = self._queue.get(timeout=wait)
                else:
                    msg = self._queue.get_nowait()
            except queue_mod.Empty:
                break
            wait = 0.0
            self._dispatch(msg)
            handled.append(msg)
        return handled

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Poll until the run is done; False on timeout or if nothing is running."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.running:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self.poll(timeout=0.1)
        return self.finished

    def cancel(self) -> None:
        with self.lock:
            if self._process is not None:
                log.info("cancelling exhaustive run %d", self._run_id)
                self._process.terminate()
                self._process.join()
                self.status = "cancelled"
            self._release()

    def _dispatch(self, msg: Message) -> None:
        if isinstance(msg, Progress):
            self.checked = msg.checked
            if self.on_progress is not None:
                self.on_progress(msg)
        elif isinstance(msg, LengthResult):
            self.best_per_length[msg.length] = msg.best
            if self.on_length_result is not None:
                self.on_length_result(msg)
        elif isinstance(msg, Done):
            self.best_per_length = dict(msg.best_per_length)
            self.checked = msg.checked
            self.results = build_frontier(self.best_per_length, self._max_height())
            self.status = "done"
            if self._process is not None:
                self._process.join(timeout=5)
            self._release()
            log.info(
                "exhaustive run %d done: %d results, best %s",
                self._run_id,
                len(self.results),
                rgb_to_hex(self.results[-1].color) if self.results else "-",
            )
            if self.on_done is not None:
                self.on_done(msg)
        else:
            raise TypeError(f"unexpected worker message {msg!r}")

    def _release(self) -> None:
        if self._queue is not None:
            self._queue.close()
            self._queue.cancel_join_thread()
        self._queue = None
        self._process = None

    def _max_height(self) -> int:
        return self.request.max_height if self.request is not None else MAX_HEIGHT

    def __enter__(self) -> "ExhaustiveSearch":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cancel()


__all__ = [
    "Done",
    "ExhaustiveRequest",
    "ExhaustiveSearch",
    "LengthResult",
    "Message",
    "Progress",
    "collect_exhaustive",
    "iter_exhaustive",
    "run_exhaustive",
    "total_stacks",
    "worker_main",
]
