from enum import Enum

from extron.support.mixins import CommonEqualityMixin, StringerMixin


class VideoType(Enum):
    """ the signal type on the video output, as reported by the identify response """
    Unknown = 0
    RGBS = 1
    RGsB = 2
    Composite = 3
    SVideo = 4


class LinearDeviceState(StringerMixin, CommonEqualityMixin):
    """
    The state of a linear-channel switcher (System 8 / System 10 PLUS), as last reported by the device.
    Channel 0 means no channel is selected.
    """

    def __init__(self):
        self.channels = 0
        self.video_channel = 0
        self.audio_channel = 0
        self.video_type = VideoType.Unknown
        self.projector_powered = False
        self.projector_muted = False
        self.audio_muted = False
        self.rgb_muted = False
        self.switcher_firmware = None
        self.projector_firmware = None

    def update(self, **fields):
        """ sets the given fields. Fields given as None are left unchanged. """
        for name, value in fields.items():
            if not hasattr(self, name):
                raise AttributeError("%s has no field %s" % (type(self).__name__, name))
            if value is not None:
                setattr(self, name, value)
