import unittest

from hamcrest import assert_that, is_, equal_to, is_not

from wabridge.support.mixins import CommonEqualityMixin, StringerMixin, quote


class Value(CommonEqualityMixin, StringerMixin):
    def __init__(self, a, b=None):
        self.a = a
        self.b = b


class Other(CommonEqualityMixin):
    def __init__(self, a, b=None):
        self.a = a
        self.b = b


class MixinsTest(unittest.TestCase):

    def test_quote(self):
        assert_that(quote(None), is_("None"))
        assert_that(quote(1), is_("'1'"))

    def test_equal_values(self):
        assert_that(Value(1, 'x'), is_(equal_to(Value(1, 'x'))))
        assert_that(Value(1, 'x') != Value(1, 'x'), is_(False))

    def test_different_values(self):
        assert_that(Value(1), is_not(equal_to(Value(2))))

    def test_different_classes(self):
        assert_that(Value(1), is_not(equal_to(Other(1))))

    def test_str_lists_public_attributes_sorted(self):
        v = Value(1, None)
        v._hidden = 'secret'
        assert_that(str(v), is_("Value:{'a': '1', 'b': None}"))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
