from __future__ import annotations


class AppError(Exception):
    pass


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class ImportParseError(ValidationError):
    pass


class RollbackNotFoundError(BusinessError):
    pass


class SessionStateError(BusinessError):
    pass


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class ExternalServiceError(InfraError):
    pass


class NetworkFailure(ExternalServiceError):
    pass


class TransientExternalError(ExternalServiceError):
    pass


def error_message(exc: BaseException, fallback: str) -> str:
    message = str(exc).strip()
    return message or fallback
