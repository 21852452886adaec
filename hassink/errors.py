"""Exception types raised by hassInk components."""


class HassInkError(Exception):
    """Base class for all hassInk errors"""


class ConfigurationError(HassInkError):
    """Configuration is missing or invalid; the service cannot start"""


class SessionLaunchError(HassInkError):
    """The browser session could not be launched or authenticated"""


class RenderError(HassInkError):
    """A single page failed to render"""


class PostProcessError(HassInkError):
    """A screenshot could not be converted for the device"""


class StorageNotFoundError(HassInkError):
    """No rendered image has been stored for a page yet"""


class WebhookError(HassInkError):
    """The battery webhook endpoint rejected a notification"""
