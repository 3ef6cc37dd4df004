"""
Communicates with Extron switchers over a serial port or a telnet session.

- Conduit: a line-oriented channel to a device. SerialConduit drives an RS-232 port at the
  switcher's fixed framing, SocketConduit a TCP session with an optional password.
- DeviceCommunicator: owns a conduit and keeps the device state current. Commands are written
  on the caller's thread and return a CommandTicket, a future for the response line(s).
- LinearSwitcherCommunicator: the System 8/10 family, with one selected channel that may be split
  into separate video and audio channels, plus projector control.
- MatrixSwitcherCommunicator: the Crosspoint family, where any input can be tied to any output,
  separately for video and audio.


## Threading

Two daemon threads run while a connection is open. The reader blocks on the conduit, pairs each
line with the oldest outstanding command and parses it into events. The events are queued for the
dispatcher, which is the only thread that changes the device state, and then notifies listeners
and error callbacks. A slow callback therefore delays later updates but never the reader.

The matrix communicator queries every output after identifying the device. The queries are paced
by a settle delay so they run on a third, short-lived thread; the responses are handled by the
reader and dispatcher like any others.

Responses are paired with commands first in, first out. A line the device sends on its own, such as
a tie made on the front panel, takes the place of the oldest outstanding response. Outstanding
commands expire after a few seconds, and the verbose responses carry everything needed to apply
them, so the state stays correct; only the ticket's result is affected.

"""
