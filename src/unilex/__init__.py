"""unilex: practice-session engine with spaced-repetition scheduling."""

from unilex.consts import VERSION

__version__ = VERSION
