"""
Pairs commands written to a device with the response lines that come back.

Extron switchers answer commands in the order they were received, so each write registers a
ticket at the back of a FIFO queue and each response line claims the ticket at the front.
Tickets are futures, resolved with the response once all of its lines have arrived.
"""
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 64


class CommandTicket(Future):
    """
    Relates a command written to the device with its future response.

    :param command: the command text written to the device
    :param issued_at: the time the command was written
    :param expected_lines: the number of lines the device sends in response. The future's result is
        the response lines joined with a newline.
    """

    def __init__(self, command: str, issued_at: float, expected_lines=1):
        super().__init__()
        self.command = command
        self.issued_at = issued_at
        self.expected_lines = expected_lines
        self.lines = []
        self.claims = 0

    @property
    def response(self) -> str:
        """ blocking fetch of the response """
        return self.result()

    @property
    def remaining(self) -> int:
        return self.expected_lines - len(self.lines)

    def receive(self, line: str):
        """ records a response line, resolving the ticket when it is the last line expected. """
        self.lines.append(line)
        if self.remaining <= 0 and not self.done():
            self.set_result("\n".join(self.lines))

    def __repr__(self):
        return "CommandTicket(%r)" % self.command


class CommandCorrelator:
    """
    A bounded FIFO of outstanding command tickets.

    :param maxlen: the most tickets held. Issuing a ticket when full cancels the oldest.
    :param ttl: seconds after which an unclaimed ticket expires, or None for tickets that never expire.
        Expired tickets are cancelled when a response goes looking for its ticket.
    :param clock: returns the current time in seconds
    """

    def __init__(self, maxlen=DEFAULT_MAX_PENDING, ttl=None, clock=time.monotonic):
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1, was %s" % maxlen)
        self.maxlen = maxlen
        self.ttl = ttl
        self.clock = clock
        self._tickets = deque()
        self._lock = threading.Lock()

    def issue(self, command: str, expected_lines=1) -> CommandTicket:
        """ appends a new ticket for the command to the back of the queue. """
        ticket = CommandTicket(command, self.clock(), expected_lines)
        with self._lock:
            if len(self._tickets) >= self.maxlen:
                evicted = self._tickets.popleft()
                logger.debug("evicting unanswered command %r", evicted.command)
                evicted.cancel()
            self._tickets.append(ticket)
        return ticket

    def take(self, accepts=None):
        """
        Claims the oldest ticket that has not expired for the next response line, or returns None
        when there are no outstanding tickets. A ticket stays at the front of the queue until it has
        been claimed once for each line it expects.
        :param accepts: called with the oldest ticket. When it returns False the line does not answer
            that ticket, so None is returned and the queue is left as it was.
        """
        with self._lock:
            while self._tickets:
                ticket = self._tickets[0]
                if self._expired(ticket):
                    self._tickets.popleft()
                    logger.debug("discarding expired command %r", ticket.command)
                    ticket.cancel()
                    continue
                if accepts is not None and not accepts(ticket):
                    return None
                ticket.claims += 1
                if ticket.claims >= ticket.expected_lines:
                    self._tickets.popleft()
                return ticket
        return None

    def discard(self, ticket: CommandTicket):
        """ removes a ticket that will never be answered, such as when the write failed. """
        with self._lock:
            if ticket in self._tickets:
                self._tickets.remove(ticket)
        ticket.cancel()

    def _expired(self, ticket: CommandTicket) -> bool:
        return self.ttl is not None and self.clock() - ticket.issued_at > self.ttl

    def clear(self):
        """ cancels all outstanding tickets. """
        with self._lock:
            tickets = list(self._tickets)
            self._tickets.clear()
        for ticket in tickets:
            ticket.cancel()

    def __len__(self):
        with self._lock:
            return len(self._tickets)
