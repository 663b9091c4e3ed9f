"""Human-readable progress lines streamed to the waiting client."""
from __future__ import annotations

import queue
from typing import Callable, Iterator, Optional

from .utils import log_line

Writer = Callable[[str], None]


class ProgressEmitter:
    """Turn traversal events into newline-terminated lines.

    Every event is written immediately through ``write`` (one call per line,
    no batching) and mirrored to the application log.
    """

    def __init__(self, write: Writer) -> None:
        self._write = write
        self.lines_emitted = 0

    def emit(self, message: str) -> None:
        self._write(f"{message}\n")
        self.lines_emitted += 1
        log_line(f"[PROGRESS] {message}")

    def started(self) -> None:
        self.emit("Download started...")

    def request_created(self, request_id: int) -> None:
        self.emit(f"Request ID: {request_id}")

    def target_started(self, name: str) -> None:
        self.emit(f"Selected city: {name}")

    def target_children(self, name: str, total: int) -> None:
        self.emit(f"Total stations in {name}: {total}")

    def target_skipped(self, name: str) -> None:
        self.emit(f"No stations selected for {name}, skipping")

    def target_failed(self, target_id: str, error: BaseException) -> None:
        self.emit(f"Error processing city {target_id}: {error}")

    def child_started(self, name: str) -> None:
        self.emit(f"Processing station: {name}")

    def child_failed(self, name: str, error: BaseException) -> None:
        self.emit(f"Error processing station {name}: {error}")

    def child_empty(self, name: str) -> None:
        self.emit(f"No FIRs in {name}, skipping")

    def child_total(self, name: str, total: int) -> None:
        self.emit(f"Total FIRs in {name}: {total}")

    def child_unmatched(self, name: str) -> None:
        self.emit(f"No matched FIRs in {name}, skipping")

    def child_matched(self, name: str, matched: int) -> None:
        self.emit(f"Matched FIRs in {name}: {matched}")

    def artifact_saved(self, file_name: str) -> None:
        self.emit(f"Saved FIR: {file_name}")

    def artifact_failed(self, record_no: str, error: BaseException) -> None:
        self.emit(f"Failed FIR: {record_no} ({error})")

    def cancelled(self) -> None:
        self.emit("Cancellation requested; stopping traversal")

    def summary(self, total_downloaded: int) -> None:
        self.emit(f"Total downloaded FIRs: {total_downloaded}")

    def completed(self, *, cancelled: bool = False) -> None:
        if cancelled:
            self.emit("Download stopped early (cancelled).")
        else:
            self.emit("Download completed successfully!")

    def failed(self) -> None:
        self.emit("Error occurred. Check server logs.")


class StreamChannel:
    """Queue-backed output channel between a traversal thread and an HTTP response.

    The traversal side calls :meth:`write` and finally :meth:`close`; the
    response side iterates :meth:`iter_lines`. If the consumer stops iterating
    before the channel is closed (client went away), ``on_disconnect`` runs.
    """

    _CLOSED = object()

    def __init__(self, on_disconnect: Optional[Callable[[], None]] = None) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._on_disconnect = on_disconnect

    def write(self, text: str) -> None:
        self._queue.put(text)

    def close(self) -> None:
        self._queue.put(self._CLOSED)

    def iter_lines(self) -> Iterator[str]:
        finished = False
        try:
            while True:
                item = self._queue.get()
                if item is self._CLOSED:
                    finished = True
                    return
                yield str(item)
        finally:
            if not finished and self._on_disconnect is not None:
                log_line("[PROGRESS] Client disconnected before the run finished")
                self._on_disconnect()


__all__ = ["ProgressEmitter", "StreamChannel", "Writer"]
