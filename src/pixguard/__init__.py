"""pixguard: moderated image upload pipeline."""

__version__ = "0.1.0"
