"""storeshield: static App Store submission checks for iOS builds."""

__version__ = "0.1.0"
