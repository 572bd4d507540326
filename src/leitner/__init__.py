"""leitner: Leitner-box spaced-repetition scheduling engine."""

from leitner.consts import VERSION

__version__ = VERSION
