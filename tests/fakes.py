from ledgergrid.store import MemoryDocumentStore, PersistenceError
from ledgergrid.sync import Scheduler


class _Handle:
    def __init__(self, scheduler, due, fn):
        self.scheduler = scheduler
        self.due = due
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual clock: timers fire only when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, fn):
        handle = _Handle(self, self.now + delay, fn)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = sorted((h for h in self.pending if h.due <= target), key=lambda h: h.due)
            if not due:
                break
            handle = due[0]
            self.now = handle.due
            handle.cancelled = True
            handle.fn()
        self.now = target


class FlakyStore(MemoryDocumentStore):
    """Memory store whose writes fail while ``failing`` is set."""

    def __init__(self, failing=True):
        super().__init__()
        self.failing = failing
        self.write_attempts = 0

    def set_document(self, path, document, merge=False):
        self.write_attempts += 1
        if self.failing:
            raise PersistenceError("store unavailable")
        super().set_document(path, document, merge=merge)


class FailingPathStore(MemoryDocumentStore):
    """Memory store that rejects writes to one path, e.g. the sheet metadata."""

    def __init__(self, fail_path=None):
        super().__init__()
        self.fail_path = fail_path

    def set_document(self, path, document, merge=False):
        if path == self.fail_path:
            raise PersistenceError(f"cannot write {path}")
        super().set_document(path, document, merge=merge)
