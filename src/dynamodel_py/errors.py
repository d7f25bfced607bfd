from __future__ import annotations


class DynamodelPyError(Exception):
    pass


class ConditionalCheckFailedError(DynamodelPyError):
    pass


class NotFoundError(DynamodelPyError):
    pass


class ValidationError(DynamodelPyError):
    pass


class MalformedKeyError(ValidationError):
    pass


class InvalidQueryError(ValidationError):
    pass


class CodecError(ValidationError):
    pass


class NestedCollectionError(CodecError):
    pass


class MixedTypesError(CodecError):
    pass


class UnsupportedTypeError(CodecError):
    pass


class InvalidBooleanError(CodecError):
    pass


class UnknownTypeError(CodecError):
    pass


class BatchRetryExceededError(DynamodelPyError):
    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count
