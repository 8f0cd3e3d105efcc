"""
Error taxonomy for the chorus processor

- ConfigurationError: invalid mode id handed to the control surface
- InitializationError: audio device or graph could not be brought up
"""


class ChorusError(Exception):
    """Base class for all chorus processor errors"""


class ConfigurationError(ChorusError, ValueError):
    """Mode id outside the table range (no state was changed)"""


class InitializationError(ChorusError, RuntimeError):
    """Engine could not start; nothing was left connected"""
