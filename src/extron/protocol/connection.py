"""
The connection engine shared by all switcher families.

A DeviceCommunicator owns a conduit and two background loops:

- the reader blocks on the conduit, pairs each response line with the oldest outstanding
  command ticket, parses the line into device events and queues them.
- the dispatcher takes events off the queue and applies them to the device state. It is the only
  thread that changes device state, and the thread that runs error callbacks and event listeners.

Commands are written without waiting for the response. Each write returns a CommandTicket that
resolves to the response line.
"""
import asyncio
import logging
import threading
from abc import abstractmethod
from enum import Enum

from extron.conduit.base import Conduit, ConduitClosedError, ConduitError, ConduitTimeoutError
from extron.protocol.correlation import CommandCorrelator, CommandTicket
from extron.protocol.loop import AsyncLoop
from extron.support.events import EventSource, QueuedEventSource
from extron.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

IDENTIFY_COMMAND = "I"
DEFAULT_TICKET_TTL = 5.0


class CommunicatorError(Exception):
    """ Base class for errors raised by a communicator. """


class ConnectionAlreadyOpenError(CommunicatorError):
    """ The connection was opened while the conduit is open or the reader is still running. """


class ConnectionNotOpenError(CommunicatorError):
    """ A command was written while the connection is closed. """


class CommandRangeError(CommunicatorError, ValueError):
    """ A command argument is outside the range the device supports. Nothing was written. """


class ConnectionState(Enum):
    Closed = 0
    Open = 1
    Identifying = 2
    Ready = 3


class DeviceEvent(StringerMixin, CommonEqualityMixin):
    """ Base class for events parsed from device responses. """


class DeviceError(DeviceEvent):
    """ The device reported an error code. """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message


def error_message(code: str, messages: dict) -> str:
    """
    Looks up the message for a device error code.
    >>> error_message("E01", {"E01": "invalid channel number"})
    'invalid channel number'
    >>> error_message("E99", {})
    'unknown error code E99'
    """
    return messages.get(code.upper(), "unknown error code %s" % code)


def check_range(name: str, value: int, maximum: int):
    """ raises CommandRangeError unless 0 <= value <= maximum """
    if not 0 <= value <= maximum:
        raise CommandRangeError("%s %s is out of range 0..%s" % (name, value, maximum))


class DeviceCommunicator:
    """
    Manages the connection to a switcher and the state derived from its responses.

    Subclasses provide the protocol by implementing _parse() to turn a response line into events,
    and _apply() to apply an event to the device state.

    :param conduit: the conduit connected to the device
    :param correlator: pairs commands with responses. When not given, unanswered commands expire after
        DEFAULT_TICKET_TTL seconds.
    :param backoff: seconds the reader waits after a transport fault before reading again
    :param join_timeout: seconds to wait for each background loop to exit when the connection is closed
    """

    def __init__(self, conduit: Conduit, correlator: CommandCorrelator = None, backoff=0.1, join_timeout=5.0):
        self.conduit = conduit
        self.correlator = correlator if correlator is not None else CommandCorrelator(ttl=DEFAULT_TICKET_TTL)
        self.backoff = backoff
        self.join_timeout = join_timeout
        self.events = EventSource()
        self.error_callbacks = EventSource()
        self._parsed = QueuedEventSource()
        self._parsed += self._dispatch
        self._write_lock = threading.Lock()
        self._lifecycle_lock = threading.RLock()
        self._ready = threading.Event()
        self._state = ConnectionState.Closed
        self._reader = None
        self._dispatcher = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connection_open(self) -> bool:
        return self.conduit.is_open

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def open_connection(self):
        """
        Opens the conduit, starts the background loops and sends the identify command.
        The communicator is not ready until the identify response has been handled.
        """
        with self._lifecycle_lock:
            reader = self._reader
            if self.conduit.is_open or (reader is not None and reader.alive):
                raise ConnectionAlreadyOpenError("connection to %s is already open" % (self.conduit.target,))
            self._ready.clear()
            self.correlator.clear()
            self._parsed.clear()
            self._reset_state()
            self.conduit.open()
            self._state = ConnectionState.Open
            logger.info("opened connection to %s", self.conduit.target)
            name = type(self).__name__
            self._dispatcher = AsyncLoop(self._dispatch_next, name=name + "-dispatch")
            self._reader = AsyncLoop(self._read_next, name=name + "-reader")
            self._dispatcher.start()
            self._reader.start()
        self.identify()

    def close_connection(self):
        """
        Stops the background loops and closes the conduit. Outstanding tickets are cancelled.
        Closing a closed connection has no effect.
        """
        with self._lifecycle_lock:
            loops = [loop for loop in (self._reader, self._dispatcher) if loop is not None]
            self._reader = self._dispatcher = None
            for loop in loops:
                loop.stop_event.set()
            was_open = self.conduit.is_open
            self.conduit.close()
            for loop in loops:
                loop.stop(self.join_timeout)
            self.correlator.clear()
            self._ready.clear()
            self._state = ConnectionState.Closed
            if was_open or loops:
                logger.info("closed connection to %s", self.conduit.target)

    def dispose(self):
        self.close_connection()
        self.conduit.dispose()

    def __enter__(self):
        self.open_connection()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_connection()

    def identify(self) -> CommandTicket:
        """ asks the device to report its configuration and firmware. """
        if self._state is ConnectionState.Open:
            self._state = ConnectionState.Identifying
        return self.write(IDENTIFY_COMMAND)

    def write(self, command: str, expected_lines=1) -> CommandTicket:
        """
        Writes a command to the device without waiting for the response.
        :param expected_lines: the number of lines the device sends back for this command
        :return: a ticket that is resolved with the response line when it arrives.
        """
        if not self.conduit.is_open:
            raise ConnectionNotOpenError("cannot write %r, connection to %s is closed" %
                                         (command, self.conduit.target))
        with self._write_lock:
            ticket = self.correlator.issue(command, expected_lines)
            try:
                self.conduit.write(command)
            except ConduitError:
                self.correlator.discard(ticket)
                raise
        return ticket

    def register_error_callback(self, callback):
        """ adds a callable that receives the message for each error reported by the device. """
        self.error_callbacks.add(callback)

    def remove_error_callback(self, callback):
        self.error_callbacks.remove(callback)

    def wait_until_ready(self, timeout=None) -> bool:
        """
        Blocks until the device state has been fetched from the device.
        :param timeout: seconds to wait, or None to wait for as long as it takes.
        :return: True if the communicator is ready, False if the wait timed out.
        """
        return self._ready.wait(timeout)

    async def wait_until_ready_async(self, timeout=None) -> bool:
        """ waits until ready without blocking the event loop. """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.wait_until_ready, timeout)

    def handle_line(self, line: str):
        """
        Pairs a response line with the oldest outstanding command, parses it and queues the
        resulting events for the dispatcher. A line the device sent unprompted leaves the
        outstanding commands waiting for their own responses.
        """
        if not line:
            return
        ticket = self.correlator.take(lambda t: self._claims_ticket(t.command, line))
        command = ticket.command if ticket is not None else ""
        try:
            events = self._parse(command, line)
            if events:
                self._parsed.fire_all(events)
        finally:
            if ticket is not None and not ticket.cancelled():
                ticket.receive(line)

    def publish(self):
        """ applies all queued events on the calling thread. """
        self._parsed.publish()

    def _read_next(self):
        reader = self._reader
        try:
            line = self.conduit.read_line()
        except ConduitTimeoutError:
            logger.debug("no response from %s", self.conduit.target)
            return
        except ConduitClosedError:
            logger.debug("connection to %s is closed", self.conduit.target)
            self._back_off(reader)
            return
        except ConduitError as e:
            logger.exception("error reading from %s: %s", self.conduit.target, e)
            self._back_off(reader)
            return
        self.handle_line(line)

    def _back_off(self, loop: AsyncLoop):
        if loop is not None:
            loop.stop_event.wait(self.backoff)

    def _dispatch_next(self):
        self._parsed.publish_next(self.backoff)

    def _dispatch(self, event: DeviceEvent):
        if isinstance(event, DeviceError):
            self._notify_error(event)
        else:
            self._apply(event)
        self.events.fire(event)

    def _notify_error(self, error: DeviceError):
        logger.warning("%s reported %s: %s", self.conduit.target, error.code, error.message)
        for callback in self.error_callbacks.handlers():
            try:
                callback(error.message)
            except Exception as e:
                logger.exception("error callback %r failed: %s", callback, e)

    def _set_ready(self):
        """ marks the device state as consistent with the device. Called by the dispatcher. """
        if not self._ready.is_set():
            self._state = ConnectionState.Ready
            self._ready.set()
            logger.info("%s is ready", self.conduit.target)

    def _reset_state(self):
        """ template method to forget device state before the connection is opened. """
        pass

    def _claims_ticket(self, command: str, line: str) -> bool:
        """
        Template method that decides if a line answers the oldest outstanding command. By default
        every line does.
        """
        return True

    @abstractmethod
    def _parse(self, command: str, line: str) -> list:
        """
        Parses a response line into a list of device events.
        :param command: the command the line is a response to, or "" if no command was outstanding
        :param line: the response line, without the line terminator
        """
        raise NotImplementedError

    @abstractmethod
    def _apply(self, event: DeviceEvent):
        """ applies an event to the device state. Called only on the dispatcher. """
        raise NotImplementedError
