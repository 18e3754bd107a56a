"""readlater: fetch, clean and render articles for distraction-free reading."""

__version__ = "0.1.0"
