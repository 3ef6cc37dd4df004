"""
Implements a conduit over a serial port.

Extron switchers use a fixed RS-232 framing: 9600 baud, 8 data bits, no parity, 1 stop bit
and no flow control. Responses are terminated with CR/LF.
"""

import logging

import serial
from serial.tools import list_ports

from extron.conduit.base import Conduit, ConduitClosedError, ConduitError, ConduitTimeoutError, strip_line

logger = logging.getLogger(__name__)

BAUD_RATE = 9600
DEFAULT_READ_TIMEOUT = 1.0
DEFAULT_WRITE_TIMEOUT = 1.0


class SerialConduit(Conduit):
    """
    A conduit that provides comms via a serial port.
    :param ser: the serial instance describing the port. It should not be open yet.
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser
        self._should_be_open = False
        self._partial = b""
        if ser.is_open:
            raise ValueError("serial object should be initially closed")

    @property
    def target(self):
        return self.ser.port

    @property
    def is_open(self) -> bool:
        return self._should_be_open and self.ser.is_open

    def open(self):
        logger.info("opening serial port %s" % self.ser.port)
        self._should_be_open = True
        self._partial = b""
        try:
            self.ser.open()
        except serial.SerialException as e:
            self._should_be_open = False
            raise ConduitError("unable to open serial port %s" % self.ser.port) from e

    def close(self):
        logger.info("closing serial port %s" % self.ser.port)
        self._should_be_open = False
        self.ser.close()

    def write(self, text: str):
        if not self.is_open:
            raise ConduitClosedError("serial port %s is not open" % self.ser.port)
        try:
            self.ser.write(text.encode('ascii'))
        except serial.SerialTimeoutException as e:
            raise ConduitTimeoutError("write to %s timed out" % self.ser.port) from e
        except serial.SerialException as e:
            raise ConduitError("write to %s failed" % self.ser.port) from e

    def read_line(self) -> str:
        if not self.is_open:
            raise ConduitClosedError("serial port %s is not open" % self.ser.port)
        try:
            data = self.ser.readline()
        except serial.SerialException as e:
            raise ConduitError("read from %s failed" % self.ser.port) from e
        data = self._partial + data
        if not data.endswith(b"\n"):
            # keep what arrived so far for the next read
            self._partial = data
            raise ConduitTimeoutError("no complete line from %s" % self.ser.port)
        self._partial = b""
        return strip_line(data)


def serial_ports():
    """
    Returns a generator for all available serial port device names.
    """
    for port in serial_port_info():
        yield port[0]


def serial_port_info():
    """
    :return: a tuple of serial port info tuples,
    :rtype:
    """
    return tuple(list_ports.comports())


def detect_port(port):
    """
    attempts to detect the given serial port. If the port is not auto, it is returned as is.
    otherwise, the first port found is returned.
    """
    if port == "auto":
        ports = tuple(serial_ports())
        if not ports:
            raise ValueError("Could not find any serial ports.")
        return ports[0]
    return port


def create_serial(port, read_timeout=DEFAULT_READ_TIMEOUT, write_timeout=DEFAULT_WRITE_TIMEOUT) -> serial.Serial:
    """
    Creates a closed serial instance configured for an Extron switcher.
    The port is assigned after construction so that pyserial does not open it immediately.
    """
    ser = serial.Serial(baudrate=BAUD_RATE, bytesize=serial.EIGHTBITS, parity=serial.PARITY_NONE,
                        stopbits=serial.STOPBITS_ONE, xonxoff=False, rtscts=False, dsrdtr=False,
                        timeout=read_timeout, write_timeout=write_timeout)
    ser.dtr = True
    ser.rts = False
    ser.port = detect_port(port)
    return ser


def serial_conduit_factory(*args, **kwargs):
    """
    Creates a factory function that creates a serial conduit.
    All arguments are passed directly to `create_serial`
    :return: a factory for serial conduits
    """
    def open_serial_conduit():
        return SerialConduit(create_serial(*args, **kwargs))

    return open_serial_conduit
