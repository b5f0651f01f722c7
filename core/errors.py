# -*- coding: utf-8 -*-


class FocusTimerError(Exception):
    """Base class for errors raised by the focus timer core."""


class ConflictError(FocusTimerError):
    """Raised when a session is opened while another one is still open."""


class PersistenceError(FocusTimerError):
    """Raised when the record store fails to create or update a session."""

    def __init__(self, message: str, session_id=None):
        super().__init__(message)
        self.session_id = session_id
