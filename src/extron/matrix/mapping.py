"""
The routing table of a matrix switcher: for each output, the input tied to its video and to its audio.
"""
import logging
import threading
from enum import Enum

from extron.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)


class MappingType(Enum):
    """ which media a tie routes. The value is the character that ends a tie command. """
    All = '!'
    Video = '%'
    Audio = '$'

    @classmethod
    def parse(cls, text: str) -> 'MappingType':
        """
        Converts the tie type used in responses and commands to a MappingType.
        >>> MappingType.parse("RGB")
        <MappingType.Video: '%'>
        >>> MappingType.parse("$")
        <MappingType.Audio: '$'>
        """
        try:
            return _mapping_names[text.lower()]
        except KeyError:
            raise ValueError("unknown mapping type %r" % text) from None

    @property
    def includes_video(self) -> bool:
        return self is not MappingType.Audio

    @property
    def includes_audio(self) -> bool:
        return self is not MappingType.Video


_mapping_names = {
    "all": MappingType.All,
    "!": MappingType.All,
    "rgb": MappingType.Video,
    "vid": MappingType.Video,
    "&": MappingType.Video,
    "%": MappingType.Video,
    "aud": MappingType.Audio,
    "$": MappingType.Audio,
}


class OutputMapping(StringerMixin, CommonEqualityMixin):
    """ The inputs tied to an output. Input 0 means nothing is tied. """

    def __init__(self, output: int, video_input=0, audio_input=0):
        self.output = output
        self.video_input = video_input
        self.audio_input = audio_input

    def copy(self) -> 'OutputMapping':
        return OutputMapping(self.output, self.video_input, self.audio_input)


class MappingTable:
    """
    Holds an OutputMapping for each output, numbered from 1. Each tie is applied under a single
    lock, so readers never see the video of a tie without its audio.
    """

    def __init__(self):
        self._mappings = {}
        self._lock = threading.Lock()

    def allocate(self, outputs: int):
        """ replaces the table with untied entries for outputs 1..outputs """
        with self._lock:
            self._mappings = {output: OutputMapping(output) for output in range(1, outputs + 1)}

    def apply_tie(self, output: int, input: int, mapping_type: MappingType) -> bool:
        """
        Ties the input to the output for the media in mapping_type.
        :return: False if the output is not in the table, in which case the tie is dropped.
        """
        with self._lock:
            mapping = self._mappings.get(output)
            if mapping is None:
                logger.warning("dropping %s tie of input %s to unknown output %s", mapping_type.name, input, output)
                return False
            if mapping_type.includes_video:
                mapping.video_input = input
            if mapping_type.includes_audio:
                mapping.audio_input = input
            return True

    def snapshot(self) -> dict:
        """ a copy of the table, keyed by output """
        with self._lock:
            return {output: mapping.copy() for output, mapping in self._mappings.items()}

    def __getitem__(self, output) -> OutputMapping:
        with self._lock:
            return self._mappings[output].copy()

    def __len__(self):
        with self._lock:
            return len(self._mappings)
