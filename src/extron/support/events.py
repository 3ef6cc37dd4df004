import threading
from queue import Empty, Queue


class EventSource(object):
    """
    Notifies registered handlers of events. Handlers can be added and removed from any thread,
    including from a handler while an event is being fired; the change applies from the next event.
    """

    def __init__(self):
        self._handlers = []
        self._lock = threading.Lock()

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        with self._lock:
            if handler not in self._handlers:
                self._handlers = self._handlers + [handler]
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers = [h for h in self._handlers if h != handler]
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        self._fire(*args, **kwargs)

    def fire_all(self, events):
        self._fire_all(events)

    def _fire_all(self, events):
        for e in events:
            self._fire(e)

    def _fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)


class QueuedEventSource(EventSource):
    """
    Decouples the thread that produces events from the thread that handles them. The public fire()
    methods post events to the queue, and the handlers are called on whichever thread calls
    publish() or publish_next(), in the order the events were posted.
    """
    def __init__(self):
        super().__init__()
        self.event_queue = Queue()

    def fire(self, event):
        self.event_queue.put(event)

    def fire_all(self, events):
        for e in events:
            self.event_queue.put(e)

    def publish(self):
        """ publishes any queued events on the calling thread. """
        queue = self.event_queue
        if not queue.empty():
            events = []
            while not queue.empty():
                events.append(queue.get())
            self._fire_all(events)

    def publish_next(self, timeout=None):
        """ waits for the next queued event and publishes it on the calling thread.
        :return: True if an event was published, False if the wait timed out.
        """
        try:
            event = self.event_queue.get(timeout=timeout)
        except Empty:
            return False
        self._fire(event)
        return True

    def clear(self):
        """ discards any events that have not yet been published. """
        queue = self.event_queue
        while not queue.empty():
            try:
                queue.get_nowait()
            except Empty:
                break
