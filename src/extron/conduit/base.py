import logging
from abc import abstractmethod

logger = logging.getLogger(__name__)


class ConduitError(IOError):
    """ Indicates an error reading from or writing to a conduit. """


class ConduitTimeoutError(ConduitError):
    """ No complete line arrived before the conduit's read timeout. This is expected while the device is idle. """


class ConduitClosedError(ConduitError):
    """ The conduit is closed, or the peer closed it. """


class Conduit:
    """
    A conduit is a line-oriented, two-way channel to a device. Commands are written as text and
    responses are read back one line at a time, with the line terminator removed.
    """

    @property
    @abstractmethod
    def target(self):
        """ the underlying resource, such as a serial port or a socket address """
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """ determines if this conduit is open. When open, lines can be read and written. """
        raise NotImplementedError

    @abstractmethod
    def open(self):
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError

    @abstractmethod
    def write(self, text: str):
        """ writes the text to the device, without waiting for any response. """
        raise NotImplementedError

    @abstractmethod
    def read_line(self) -> str:
        """
        Blocks until a complete line is available and returns it without the line terminator.
        Raises ConduitTimeoutError if no line arrives within the read timeout.
        """
        raise NotImplementedError

    def dispose(self):
        """ releases any resources held by the conduit. The conduit cannot be reopened afterwards. """
        self.close()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ConduitDecorator(Conduit):
    """
    A ConduitDecorator wraps another conduit and delegates to it's methods.
    This allows subclasses to easily override some behaviors while keeping others
    unchanged.
    """

    def __init__(self, decorate: Conduit):
        self.decorate = decorate

    @property
    def target(self):
        return self.decorate.target

    @property
    def is_open(self) -> bool:
        return self.decorate.is_open

    def open(self):
        self.decorate.open()

    def close(self):
        self.decorate.close()

    def write(self, text: str):
        self.decorate.write(text)

    def read_line(self) -> str:
        return self.decorate.read_line()

    def dispose(self):
        self.decorate.dispose()


class LoggingConduit(ConduitDecorator):
    """ Logs each line written to and read from the decorated conduit. """

    def __init__(self, decorate: Conduit, log=logger):
        super().__init__(decorate)
        self.logger = log

    def write(self, text: str):
        self.logger.debug("write(%r) to %s", text, self.target)
        super().write(text)

    def read_line(self) -> str:
        line = super().read_line()
        self.logger.debug("read_line() from %s: %r", self.target, line)
        return line


def strip_line(raw) -> str:
    """
    Decodes a raw line read from a device and removes the line terminator and surrounding whitespace.
    >>> strip_line(b"C3\\r\\n")
    'C3'
    >>> strip_line("Out2 In4 All\\n")
    'Out2 In4 All'
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('ascii', errors='replace')
    return raw.strip()
