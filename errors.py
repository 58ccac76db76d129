"""
Error types shared by the importer, the deep scan and the web layer.

Each error carries the HTTP status the Flask app answers with.
"""


class ConvoScrubError(Exception):
    """Base class for errors surfaced to the user"""
    status_code = 500


class ImportParseError(ConvoScrubError):
    """The archive is not valid JSON or yields zero conversations"""
    status_code = 400


class MissingCredentialError(ConvoScrubError):
    """No API key was supplied and none is configured"""
    status_code = 400


class BatchClassificationError(ConvoScrubError):
    """One batch of the deep scan failed; never escapes the scanner"""

    def __init__(self, batch_number: int, message: str):
        super().__init__(f"Batch {batch_number}: {message}")
        self.batch_number = batch_number


class GenericOperationError(ConvoScrubError):
    """Unexpected failure while orchestrating a scan"""
    status_code = 500


class ScanInProgressError(ConvoScrubError):
    status_code = 409


class ConversationNotFoundError(ConvoScrubError):
    status_code = 404


class ConfirmationRequiredError(ConvoScrubError):
    status_code = 400
