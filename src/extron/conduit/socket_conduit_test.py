import socket
import threading
import unittest
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, calling, is_, raises

from extron.conduit.base import ConduitClosedError, ConduitError, ConduitTimeoutError
from extron.conduit.socket_conduit import SocketConduit

server_host = '127.0.0.1'


class PasswordServer:
    """ accepts one client, records the first line received and replies with an identify line. """

    def __init__(self):
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server.bind((server_host, 0))
        self.server.listen(1)
        self.port = self.server.getsockname()[1]
        self.received = []
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        client, address = self.server.accept()
        try:
            data = b""
            while data.count(b"\n") < 2:
                chunk = client.recv(1024)
                if not chunk:
                    break
                data += chunk
            self.received = data.decode().split("\r\n")
            client.sendall(b"V8X4 A8X4\r\n")
        finally:
            client.close()
            self.server.close()


class ClientSocketTestCase(unittest.TestCase):
    """ functional test for the socket conduit against a local server. """

    @timeout_decorator.timeout(5)
    def test_password_is_first_line(self):
        server = PasswordServer()
        sut = SocketConduit(server_host, server.port, password="secret", read_timeout=2)
        sut.open()
        try:
            sut.write("I")
            assert_that(sut.read_line(), is_("V8X4 A8X4"))
            server.thread.join()
            assert_that(server.received[:2], is_(["secret", "I"]))
            assert_that(calling(sut.read_line), raises(ConduitClosedError))
        finally:
            sut.close()
        assert_that(sut.is_open, is_(False))


class SocketConduitTest(unittest.TestCase):
    def setUp(self):
        self.sock = Mock()
        self.sock.fileno.return_value = 3
        self.connect = Mock(return_value=self.sock)

    def test_open(self):
        sut = SocketConduit("device", 23, read_timeout=0.5, connect=self.connect)
        assert_that(sut.is_open, is_(False))
        sut.open()
        self.connect.assert_called_once_with(("device", 23), 5.0)
        self.sock.settimeout.assert_called_once_with(0.5)
        self.sock.sendall.assert_not_called()
        assert_that(sut.is_open, is_(True))
        assert_that(sut.target, is_(("device", 23)))
        self.sock.fileno.return_value = -1
        assert_that(sut.is_open, is_(False))

    def test_open_sends_password(self):
        sut = SocketConduit("device", password="pw", connect=self.connect)
        sut.open()
        self.sock.sendall.assert_called_once_with(b"pw\r\n")

    def test_open_failure(self):
        self.connect.side_effect = ConnectionRefusedError()
        sut = SocketConduit("device", connect=self.connect)
        assert_that(calling(sut.open), raises(ConduitError))
        assert_that(sut.is_open, is_(False))

    def test_write_when_closed(self):
        sut = SocketConduit("device", connect=self.connect)
        assert_that(calling(sut.write).with_args("I"), raises(ConduitClosedError))

    def test_read_lines_split_across_packets(self):
        self.sock.recv.side_effect = [b"Out1 In2", b" All\r\nOut2", b" In3 Vid\r\n"]
        sut = SocketConduit("device", connect=self.connect)
        sut.open()
        assert_that(sut.read_line(), is_("Out1 In2 All"))
        assert_that(sut.read_line(), is_("Out2 In3 Vid"))

    def test_read_timeout(self):
        self.sock.recv.side_effect = socket.timeout()
        sut = SocketConduit("device", connect=self.connect)
        sut.open()
        assert_that(calling(sut.read_line), raises(ConduitTimeoutError))

    def test_read_error(self):
        self.sock.recv.side_effect = ConnectionResetError()
        sut = SocketConduit("device", connect=self.connect)
        sut.open()
        assert_that(calling(sut.read_line), raises(ConduitError))

    def test_close_swallows_shutdown_error(self):
        def shutdown_error(arg):
            raise OSError("summat bad happened")

        self.sock.shutdown.side_effect = shutdown_error
        sut = SocketConduit("device", connect=self.connect)
        sut.open()
        sut.close()
        self.sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
        self.sock.close.assert_called_once()
        assert_that(sut.is_open, is_(False))
        sut.close()
        self.sock.close.assert_called_once()


if __name__ == '__main__':  # pragma: no cover
    unittest.main()
