import logging
import socket

from extron.conduit.base import Conduit, ConduitClosedError, ConduitError, ConduitTimeoutError, strip_line

logger = logging.getLogger(__name__)

DEFAULT_PORT = 23
LINE_ENDING = "\r\n"
RECV_SIZE = 1024


class SocketConduit(Conduit):
    """
    A conduit that provides line-oriented communication via a TCP socket, as offered by the telnet
    port of network-enabled switchers.

    When a password is given, it is written as the first line straight after connecting, before
    any protocol traffic.

    :param host: the host name or IP address of the device
    :param port: the TCP port of the device
    :param password: the password to log in with, or None when the device is not password protected
    :param read_timeout: seconds to wait for a line before read_line() raises ConduitTimeoutError
    :param connect_timeout: seconds to wait for the connection to be established
    """
    def __init__(self, host, port=DEFAULT_PORT, password=None, read_timeout=1.0, connect_timeout=5.0,
                 connect=socket.create_connection):
        self.host = host
        self.port = port
        self.password = password
        self.read_timeout = read_timeout
        self.connect_timeout = connect_timeout
        self._connect = connect
        self.sock = None
        self._buffer = b""

    @property
    def target(self):
        return self.host, self.port

    @property
    def is_open(self) -> bool:
        return self.sock is not None and self.sock.fileno() >= 0

    def open(self):
        try:
            sock = self._connect((self.host, self.port), self.connect_timeout)
        except OSError as e:
            logger.warning("error opening socket to %s:%s: %s" % (self.host, self.port, e))
            raise ConduitError("unable to connect to %s:%s" % (self.host, self.port)) from e
        sock.settimeout(self.read_timeout)
        self.sock = sock
        self._buffer = b""
        logger.info("opened socket to %s:%s" % (self.host, self.port))
        if self.password:
            self.write(self.password)

    def close(self):
        sock = self.sock
        self.sock = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # the peer may have closed the socket
            pass
        finally:
            sock.close()
            logger.info("closed socket to %s:%s" % (self.host, self.port))

    def write(self, text: str):
        if not self.is_open:
            raise ConduitClosedError("socket to %s:%s is not open" % (self.host, self.port))
        try:
            self.sock.sendall((text + LINE_ENDING).encode('ascii'))
        except socket.timeout as e:
            raise ConduitTimeoutError("write to %s:%s timed out" % (self.host, self.port)) from e
        except OSError as e:
            raise ConduitError("write to %s:%s failed" % (self.host, self.port)) from e

    def read_line(self) -> str:
        while b"\n" not in self._buffer:
            sock = self.sock
            if sock is None:
                raise ConduitClosedError("socket to %s:%s is not open" % (self.host, self.port))
            try:
                chunk = sock.recv(RECV_SIZE)
            except socket.timeout as e:
                raise ConduitTimeoutError("no line from %s:%s" % (self.host, self.port)) from e
            except OSError as e:
                raise ConduitError("read from %s:%s failed" % (self.host, self.port)) from e
            if not chunk:
                raise ConduitClosedError("connection closed by %s:%s" % (self.host, self.port))
            self._buffer += chunk
        line, self._buffer = self._buffer.split(b"\n", 1)
        return strip_line(line)
