"""yearlists - ranked year-end album lists with main-list selection and year locking."""

__version__ = "0.1.0"
