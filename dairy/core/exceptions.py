"""
Business-rule exceptions raised by the service layer.

Views translate these into HTTP responses; management commands print them.
"""


class DairyError(Exception):
    """Base exception for all dairy business-rule violations"""
    status_code = 400

    def __init__(self, message, context=None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ValidationFailed(DairyError):
    """Input is well-formed but violates a business rule"""
    pass


class InvoiceLocked(DairyError):
    """Invoice can no longer be edited or deleted"""
    pass


class PermissionDenied(DairyError):
    """User's role does not allow the operation"""
    status_code = 403


class InvalidPin(DairyError):
    """Confirmation PIN missing, malformed or wrong"""
    status_code = 403


def error_response(exc):
    """Translate a DairyError into a DRF response"""
    from rest_framework.response import Response

    payload = {'error': exc.message}
    if exc.context:
        payload['details'] = exc.context
    return Response(payload, status=exc.status_code)


def forbidden_response(message='You do not have permission to perform this action.'):
    return error_response(PermissionDenied(message))
