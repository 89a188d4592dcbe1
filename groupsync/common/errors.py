# groupsync/common/errors.py
"""
Иерархия ошибок ядра.

Каждая ошибка знает свой код, HTTP-статус и признак retryable,
чтобы клиент мог отличить временный сбой (молча повторить на следующем
тике) от постоянного (показать пользователю).
"""

from __future__ import annotations

from typing import Any


class GroupSyncError(Exception):
    """Базовая ошибка ядра."""

    code: str = "internal"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        constraint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.constraint = constraint

    def to_details(self) -> dict[str, Any]:
        """Детали ошибки для ErrorResponse."""
        details: dict[str, Any] = {"retryable": self.retryable}
        if self.field is not None:
            details["field"] = self.field
        if self.constraint is not None:
            details["constraint"] = self.constraint
        return details


class InvalidInputError(GroupSyncError):
    """Некорректные входные данные. Никогда не повторяется автоматически."""

    code = "invalid_input"
    status_code = 400

    def __init__(self, field: str, constraint: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Поле '{field}' нарушает ограничение: {constraint}",
            field=field,
            constraint=constraint,
        )


class NotFoundError(GroupSyncError):
    """Сущность не найдена."""

    code = "not_found"
    status_code = 404


class UnavailableError(GroupSyncError):
    """Хранилище или диспетчер временно недоступны, либо истёк таймаут."""

    code = "unavailable"
    status_code = 503
    retryable = True


class UnauthenticatedError(GroupSyncError):
    """Вызывающий не передал идентичность."""

    code = "unauthenticated"
    status_code = 401


ERRORS_BY_CODE: dict[str, type[GroupSyncError]] = {
    cls.code: cls
    for cls in (InvalidInputError, NotFoundError, UnavailableError, UnauthenticatedError)
}


def error_from_payload(payload: dict[str, Any]) -> GroupSyncError:
    """
    Восстанавливает исключение из тела ErrorResponse.

    Используется HTTP-клиентом, чтобы вызывающий код работал
    с той же таксономией ошибок, что и ядро.
    """
    code = payload.get("error_code", "internal")
    message = payload.get("message", "")
    details = payload.get("details") or {}
    field = details.get("field")
    constraint = details.get("constraint")

    cls = ERRORS_BY_CODE.get(code)
    if cls is InvalidInputError:
        return InvalidInputError(field or "unknown", constraint or "invalid", message or None)
    if cls is None:
        return GroupSyncError(message or code, field=field, constraint=constraint)
    return cls(message, field=field, constraint=constraint)
