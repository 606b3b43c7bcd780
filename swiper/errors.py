"""Exception taxonomy shared by the services."""
from __future__ import annotations


class SwiperError(Exception):
    """Base class for all domain and infrastructure errors."""


class InputError(SwiperError):
    """User-correctable input: unmatched text, unknown command, ambiguous reply."""


class NotFound(SwiperError):
    """An external lookup (metadata, season, episode) came back empty or failed."""


class CancelCommand(SwiperError):
    """The user typed "cancel" while a prompt was waiting for a reply."""


class LockTimeout(SwiperError):
    """The memory lock could not be acquired within the configured wait."""


class StoreIOError(SwiperError):
    """The memory document could not be read, parsed or written."""


class TransferError(SwiperError):
    """A torrent transfer failed or could not be started."""
