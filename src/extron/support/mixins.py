import threading
from enum import Enum


def format_value(val):
    """
    >>> format_value(None)
    'None'
    >>> format_value('1.33')
    "'1.33'"
    """
    if isinstance(val, Enum):
        return val.name
    return repr(val) if isinstance(val, str) else str(val)


def public_fields(obj) -> dict:
    """ the instance attributes of obj that are not private, that is, do not start with an underscore. """
    return {key: val for key, val in vars(obj).items() if not key.startswith('_')}


class StringerMixin:
    """
    Formats value objects for log messages as the class name followed by the public fields in key order,
    e.g. TieChanged(input=3, mapping_type=Video, output=2)
    """

    def __str__(self):
        fields = sorted(public_fields(self).items())
        return type(self).__name__ + '(' + ", ".join(key + '=' + format_value(val) for key, val in fields) + ')'

    __repr__ = __str__


class CommonEqualityMixin(object):
    """  a deep equals comparison of the public fields of value objects. """
    local = threading.local()

    def __eq__(self, other):
        if not hasattr(CommonEqualityMixin.local, 'seen'):
            CommonEqualityMixin.local.seen = []
        seen = CommonEqualityMixin.local.seen
        return hasattr(other, '__dict__') and isinstance(other, self.__class__) \
            and self._fields_equal(other, seen)

    def _fields_equal(self, other, seen):
        p = (id(self), id(other))
        if p in seen:
            raise ValueError("recursive call %s" % (p,))
        try:
            seen.append(p)
            return public_fields(self) == public_fields(other)
        finally:
            seen.pop()

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None
