import threading


def quote(val):
    return "'" + str(val) + "'" if val is not None else "None"


class StringerMixin:

    def __str__(self):
        """
        outputs the class name and the object dictionary in key sorted order
        """
        return self.__class__.__name__ + ':' + self._sorted_items_string()

    def _sorted_items_string(self):
        return "{" + ", ".join([("'" + str(key)) + "'" + ": " + (quote(val))
                                for key, val in sorted(self.__dict__.items())]) + "}"


class CommonEqualityMixin(object):
    """  a deep equals comparison for value objects. """
    local = threading.local()

    def __eq__(self, other):
        if not hasattr(CommonEqualityMixin.local, 'seen'):
            CommonEqualityMixin.local.seen = []
        seen = CommonEqualityMixin.local.seen
        return hasattr(other, '__dict__') and isinstance(other, self.__class__) \
            and self._dicts_equal(other, seen)

    def _dicts_equal(self, other, seen):
        p = (id(self), id(other))
        if p in seen:
            raise ValueError("recursive comparison of %s" % str(p))

        d1 = self.__dict__
        d2 = other.__dict__
        try:
            seen.append(p)
            result = d1 == d2
        finally:
            seen.pop()
        return result

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(tuple(sorted(self.__dict__.items())))


class FrozenMixin:
    """
    Prevents attribute assignment once _freeze() has been called, typically at the end of __init__.
    """
    _frozen = False

    def _freeze(self):
        object.__setattr__(self, '_frozen', True)

    def __setattr__(self, key, value):
        if self._frozen:
            raise AttributeError("%s is immutable" % self.__class__.__name__)
        super().__setattr__(key, value)

    def __delattr__(self, key):
        if self._frozen:
            raise AttributeError("%s is immutable" % self.__class__.__name__)
        super().__delattr__(key)
