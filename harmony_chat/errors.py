# Exceptions shared across the protocol, generation and model store layers.


class HarmonyChatError(Exception):
    """Base class for every error raised by this package."""


class MessageValidationError(HarmonyChatError):
    """Incoming messages or their structure are not acceptable."""


class GenerationError(HarmonyChatError):
    """The inference engine failed in the middle of a pass."""


class DetokenizationError(HarmonyChatError):
    """A token buffer could not be turned back into text (e.g. a split UTF-8 byte)."""


class ModelNotReadyError(HarmonyChatError):
    """The engine was used before a model was loaded."""


class ModelStoreError(HarmonyChatError):
    pass


class DownloadCancelled(ModelStoreError):
    pass
