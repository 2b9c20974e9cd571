"""Errors raised by session commands.

Every error is scoped to the connection that issued the command and is
reported back to it as an ``error`` event; none of them closes the
connection.
"""


class BingoError(Exception):
    code = 'error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class MalformedMessage(BingoError):
    code = 'malformed_message'


class Unauthorized(BingoError):
    code = 'unauthorized'

    def __init__(self, message: str = 'Unauthorized'):
        super().__init__(message)


class InvalidArgument(BingoError):
    code = 'invalid_argument'


class ClaimRejected(BingoError):
    code = 'claim_rejected'

    def __init__(self, message: str = 'Bingo claim could not be verified'):
        super().__init__(message)


class ResourceExhausted(BingoError):
    code = 'resource_exhausted'
