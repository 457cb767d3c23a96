class NanoFilesError(Exception):
    pass


class DirectoryUnreachableError(NanoFilesError):
    """
    Raised when the directory did not answer after the whole retransmission
    budget. The directory session cannot continue; the host application
    decides whether to restart it or shut down.
    """

    def __init__(self, address, attempts):
        super().__init__(f"No response from directory at {address[0]}:{address[1]} "
                         f"after {attempts} attempts")
        self.address = address
        self.attempts = attempts


class MalformedMessageError(NanoFilesError):
    """A directory datagram that does not decode into a legal answer."""

    def __init__(self, message, data=None):
        super().__init__(message)
        self.data = data


class PeerProtocolError(NanoFilesError):
    """Unknown operation or unexpected field layout in a peer message."""
    pass


class ConfigError(NanoFilesError):
    pass
