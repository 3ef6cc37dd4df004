"""
Parses responses from matrix switchers (the Crosspoint family) into device events.

Some responses can only be understood together with the command they answer: a tie query such as
`2%` is answered with just the input number, and the firmware and lock mode queries are answered with
a bare value. Verbose tie reports (`Out2 In3 All`) and error codes stand on their own, so they are
recognised whichever command is outstanding, including when the device sends them unprompted.
"""
import logging
import re

from extron.matrix.mapping import MappingType
from extron.matrix.state import LockMode
from extron.protocol.connection import DeviceError, DeviceEvent, error_message

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    "E01": "invalid input number",
    "E10": "invalid command",
    "E11": "invalid preset number",
    "E12": "invalid output number",
    "E13": "invalid value",
    "E14": "illegal command for this configuration",
    "E17": "system timed out",
    "E22": "busy",
    "E24": "privilege violation",
    "E25": "device not present",
}

ERROR_PATTERN = re.compile(r"E\d{2}", re.IGNORECASE)
IDENTIFY_PATTERN = re.compile(r"V(\d+)X(\d+) A(\d+)X(\d+)")
TIE_PATTERN = re.compile(r"Out(\d+) In(\d+) (All|RGB|Vid|Aud)", re.IGNORECASE)
# a tie command {input}*{output}{type} or a tie query {output}{type}
TIE_COMMAND_PATTERN = re.compile(r"(?:(\d+)\*)?(\d+)([!&%$])")


class TopologyReceived(DeviceEvent):
    """ the identify response. Video and audio share the input and output counts. """

    def __init__(self, inputs: int, outputs: int):
        self.inputs = inputs
        self.outputs = outputs


class TieChanged(DeviceEvent):
    def __init__(self, output: int, input: int, mapping_type: MappingType):
        self.output = output
        self.input = input
        self.mapping_type = mapping_type


class FirmwareChanged(DeviceEvent):
    def __init__(self, version: str):
        self.version = version


class LockModeChanged(DeviceEvent):
    def __init__(self, lock_mode: LockMode):
        self.lock_mode = lock_mode


def parse_error(command, response):
    if ERROR_PATTERN.fullmatch(response):
        code = response.upper()
        return [DeviceError(code, error_message(code, ERROR_MESSAGES))]


def parse_identify(command, response):
    match = IDENTIFY_PATTERN.search(response)
    if match and (command.upper() == "I" or IDENTIFY_PATTERN.fullmatch(response)):
        inputs, outputs = int(match.group(1)), int(match.group(2))
        return [TopologyReceived(inputs, outputs)]


def parse_firmware(command, response):
    if command.upper() == "Q":
        return [FirmwareChanged(response)]


def parse_lock_mode(command, response):
    if command.upper() == "X" and response.isdigit():
        return [LockModeChanged(LockMode(int(response)))]


def parse_verbose_tie(command, response):
    match = TIE_PATTERN.search(response)
    if match:
        output, input, mapping = match.groups()
        return [TieChanged(int(output), int(input), MappingType.parse(mapping))]


def parse_terse_tie(command, response):
    """ a bare input number, answering the tie command or query that is outstanding """
    match = TIE_COMMAND_PATTERN.fullmatch(command)
    if match and response.isdigit():
        output, mapping = match.group(2), match.group(3)
        return [TieChanged(int(output), int(response), MappingType.parse(mapping))]


def answers_command(command: str, response: str) -> bool:
    """
    Decides if a response answers the command, or was sent by the device unprompted. A verbose tie
    answers only a tie command or query for the same output, and a topology report only the identify
    command. Any other response, including an error code, answers the command.
    >>> answers_command("1%", "Out3 In2 All")
    False
    >>> answers_command("2*3!", "Out3 In2 All")
    True
    """
    response = response.strip()
    match = TIE_PATTERN.search(response)
    if match:
        command_match = TIE_COMMAND_PATTERN.fullmatch(command)
        return command_match is not None and int(command_match.group(2)) == int(match.group(1))
    if IDENTIFY_PATTERN.fullmatch(response):
        return command.upper() == "I"
    return True


PARSERS = (
    parse_error,
    parse_identify,
    parse_verbose_tie,
    parse_firmware,
    parse_lock_mode,
    parse_terse_tie,
)


def parse_response(command: str, response: str) -> list:
    """
    Parses a response line into a list of events. The first parser that recognises the response wins.
    :param command: the command the response answers, or "" when there is none
    >>> parse_response("2%", "03")
    [TieChanged(input=3, mapping_type=Video, output=2)]
    """
    response = response.strip()
    if not response:
        return []
    for parse in PARSERS:
        try:
            events = parse(command, response)
        except ValueError as e:
            logger.warning("unable to parse response %r to command %r: %s", response, command, e)
            return []
        if events is not None:
            return events
    logger.debug("ignoring response %r to command %r", response, command)
    return []
