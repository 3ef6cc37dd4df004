"""
Parses responses from linear-channel switchers (System 8 / System 10 PLUS) into device events.

Responses are recognised by their leading characters, case-insensitively. The rules are tried in
order and the first match wins, so more specific prefixes (AMUT) come before the general ones (A).
"""
import logging

from extron.linear.state import LinearDeviceState, VideoType
from extron.protocol.connection import DeviceError, DeviceEvent, error_message

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    "E01": "invalid channel number",
    "E02": "slave communication error",
    "E03": "projector is powered off",
    "E04": "projector communication error",
    "E06": "VLB switch enabled & last input selected",
}


class LinearEvent(DeviceEvent):
    """ an event that updates the linear device state """

    def apply(self, state: LinearDeviceState):
        raise NotImplementedError


class ChannelChanged(LinearEvent):
    """ audio and video both switched to the channel """

    def __init__(self, channel: int):
        self.channel = channel

    def apply(self, state):
        state.video_channel = self.channel
        state.audio_channel = self.channel


class VideoChannelChanged(LinearEvent):
    def __init__(self, channel: int):
        self.channel = channel

    def apply(self, state):
        state.video_channel = self.channel


class AudioChannelChanged(LinearEvent):
    def __init__(self, channel: int):
        self.channel = channel

    def apply(self, state):
        state.audio_channel = self.channel


class AudioMuteChanged(LinearEvent):
    def __init__(self, muted: bool):
        self.muted = muted

    def apply(self, state):
        state.audio_muted = self.muted


class RgbMuteChanged(LinearEvent):
    def __init__(self, muted: bool):
        self.muted = muted

    def apply(self, state):
        state.rgb_muted = self.muted


class ProjectorMuteChanged(LinearEvent):
    def __init__(self, muted: bool):
        self.muted = muted

    def apply(self, state):
        state.projector_muted = self.muted


class ProjectorPowerChanged(LinearEvent):
    def __init__(self, powered: bool):
        self.powered = powered

    def apply(self, state):
        state.projector_powered = self.powered


class SwitcherFirmwareChanged(LinearEvent):
    def __init__(self, version: str):
        self.version = version

    def apply(self, state):
        state.switcher_firmware = self.version


class ProjectorFirmwareChanged(LinearEvent):
    def __init__(self, version: str):
        self.version = version

    def apply(self, state):
        state.projector_firmware = self.version


class IdentifyReceived(LinearEvent):
    """
    The device reported its full state. Fields that were missing from the response, or could not
    be parsed, are None and leave the current state unchanged.
    """

    def __init__(self, channels=None, video_channel=None, audio_channel=None, video_type=None,
                 projector_powered=None, projector_muted=None, audio_muted=None, rgb_muted=None,
                 switcher_firmware=None, projector_firmware=None):
        self.channels = channels
        self.video_channel = video_channel
        self.audio_channel = audio_channel
        self.video_type = video_type
        self.projector_powered = projector_powered
        self.projector_muted = projector_muted
        self.audio_muted = audio_muted
        self.rgb_muted = rgb_muted
        self.switcher_firmware = switcher_firmware
        self.projector_firmware = projector_firmware

    def apply(self, state):
        state.update(**self.__dict__)


def _flag(value: str) -> bool:
    return int(value) == 1


def _firmware(value: str) -> str:
    return value


def _video_type(value: str) -> VideoType:
    return VideoType(int(value))


# identify tokens in the order the device sends them: (field, prefix length, conversion)
IDENTIFY_FIELDS = (
    ('video_channel', 1, int),              # Vx
    ('audio_channel', 1, int),              # Ax
    ('video_type', 1, _video_type),         # Tx
    ('projector_powered', 1, _flag),        # Px
    ('projector_muted', 1, _flag),          # Sx
    ('audio_muted', 1, _flag),              # Zx
    ('rgb_muted', 1, _flag),                # Rx
    ('switcher_firmware', 3, _firmware),    # QSCx.xx
    ('projector_firmware', 3, _firmware),   # QPCx.xx
    ('channels', 1, int),                   # Mx
)


def parse_identify(response: str) -> list:
    """
    Parses the identify response `Vx Ax Tx Px Sx Zx Rx QSCx.xx QPCx.xx Mx`.
    A token that fails to parse leaves its field unset, without affecting the other fields.
    """
    tokens = response.split()
    if len(tokens) < len(IDENTIFY_FIELDS):
        logger.warning("identify response %r has %d of %d fields", response, len(tokens), len(IDENTIFY_FIELDS))
    fields = {}
    for token, (name, prefix, convert) in zip(tokens, IDENTIFY_FIELDS):
        try:
            fields[name] = convert(token[prefix:])
        except ValueError:
            logger.warning("unable to parse %s from identify token %r", name, token)
    return [IdentifyReceived(**fields)]


def _last_flag(response: str) -> bool:
    return response[-1] == '1'


def _number(response: str, prefix=1) -> int:
    return int(response[prefix:])


def parse_error(response: str) -> list:
    code = response.upper()
    return [DeviceError(code, error_message(code, ERROR_MESSAGES))]


def _starts(prefix):
    return lambda response: response.upper().startswith(prefix)


def _is_identify(response: str) -> bool:
    return response[0] in "Vv" and (len(response) > 4 or " " in response)


RULES = (
    (_starts("E"), parse_error),
    (_starts("AMUT"), lambda r: [AudioMuteChanged(_last_flag(r))]),
    (_starts("A"), lambda r: [AudioChannelChanged(_number(r))]),
    (_starts("C"), lambda r: [ChannelChanged(_number(r))]),
    (_is_identify, parse_identify),
    (_starts("V"), lambda r: [VideoChannelChanged(_number(r))]),
    (_starts("B"), lambda r: [RgbMuteChanged(_last_flag(r))]),
    (_starts("QSC"), lambda r: [SwitcherFirmwareChanged(r[3:])]),
    (_starts("Q"), lambda r: [ProjectorFirmwareChanged(r[3:])]),
    (_starts("M"), lambda r: [ProjectorMuteChanged(_last_flag(r))]),
    (_starts("PR"), lambda r: [ProjectorPowerChanged(_last_flag(r))]),
)


def parse_response(response: str) -> list:
    """
    Parses a response line into a list of events. Unrecognised or unparseable responses give no events.
    >>> parse_response("C3")
    [ChannelChanged(channel=3)]
    >>> parse_response("AMUT1")
    [AudioMuteChanged(muted=True)]
    """
    response = response.strip()
    if not response:
        return []
    for matches, handle in RULES:
        if matches(response):
            try:
                return handle(response)
            except ValueError as e:
                logger.warning("unable to parse response %r: %s", response, e)
                return []
    logger.debug("ignoring response %r", response)
    return []
