from enum import Enum

from extron.support.mixins import CommonEqualityMixin, StringerMixin


class LockMode(Enum):
    """ front panel lock. Unlocked is reported by the device as mode 0. """
    Unlocked = 0
    All = 1
    Advanced = 2


class MatrixDeviceState(StringerMixin, CommonEqualityMixin):
    """ the configuration of a matrix switcher, apart from its ties """

    def __init__(self):
        self.inputs = 0
        self.outputs = 0
        self.firmware = None
        self.lock_mode = LockMode.Unlocked
