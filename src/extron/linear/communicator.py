import logging

from extron.conduit.base import Conduit
from extron.linear.parser import IdentifyReceived, LinearEvent, parse_response
from extron.linear.state import LinearDeviceState, VideoType
from extron.protocol.connection import DeviceCommunicator, check_range
from extron.protocol.correlation import CommandTicket

logger = logging.getLogger(__name__)

VERSIONS_COMMAND = "q"


class LinearSwitcherCommunicator(DeviceCommunicator):
    """
    Communicates with a linear-channel switcher, such as the Extron System 8 or System 10 PLUS.
    These select one channel for video and one for audio, and can control an attached projector.

    The communicator is ready once the identify response has been applied, which reports the
    number of channels and the current state of the switcher.
    """

    def __init__(self, conduit: Conduit, **kwargs):
        super().__init__(conduit, **kwargs)
        self.device_state = LinearDeviceState()

    @property
    def channels(self) -> int:
        return self.device_state.channels

    @property
    def video_channel(self) -> int:
        return self.device_state.video_channel

    @property
    def audio_channel(self) -> int:
        return self.device_state.audio_channel

    @property
    def video_type(self) -> VideoType:
        return self.device_state.video_type

    @property
    def is_projector_powered(self) -> bool:
        return self.device_state.projector_powered

    @property
    def is_projector_muted(self) -> bool:
        return self.device_state.projector_muted

    @property
    def is_audio_muted(self) -> bool:
        return self.device_state.audio_muted

    @property
    def is_rgb_muted(self) -> bool:
        return self.device_state.rgb_muted

    @property
    def switcher_firmware_version(self) -> str:
        return self.device_state.switcher_firmware

    @property
    def projector_firmware_version(self) -> str:
        return self.device_state.projector_firmware

    def change_channel(self, channel: int) -> CommandTicket:
        """ switches both video and audio to the channel """
        check_range("channel", channel, self.channels)
        return self.write("%d!" % channel)

    def change_video_channel(self, channel: int) -> CommandTicket:
        check_range("channel", channel, self.channels)
        return self.write("%d&" % channel)

    def change_audio_channel(self, channel: int) -> CommandTicket:
        check_range("channel", channel, self.channels)
        return self.write("%d$" % channel)

    def get_software_versions(self) -> CommandTicket:
        """ asks for the switcher and projector firmware versions, which arrive as two lines. """
        return self.write(VERSIONS_COMMAND, expected_lines=2)

    def set_projector_power(self, powered: bool) -> CommandTicket:
        return self.write("[" if powered else "]")

    def set_projector_visibility(self, visible: bool) -> CommandTicket:
        return self.write(")" if visible else "(")

    def set_rgb_visibility(self, visible: bool) -> CommandTicket:
        return self.write("b" if visible else "B")

    def set_audio_mute(self, muted: bool) -> CommandTicket:
        return self.write("+" if muted else "-")

    def _reset_state(self):
        self.device_state = LinearDeviceState()

    def _parse(self, command, line):
        return parse_response(line)

    def _apply(self, event: LinearEvent):
        event.apply(self.device_state)
        if isinstance(event, IdentifyReceived):
            logger.info("identified %s with %s channels, switcher firmware %s",
                        self.conduit.target, self.channels, self.switcher_firmware_version)
            self._set_ready()
