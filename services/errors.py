"""
Domain errors raised by the billing services. Each carries the HTTP status
the routers answer with.
"""


class BillingError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProfessionalNotFound(BillingError):
    status_code = 404

    def __init__(self, message: str = "Professional profile not found"):
        super().__init__(message)


class PreconditionFailed(BillingError):
    status_code = 400


class InvalidLimitType(BillingError):
    status_code = 400

    def __init__(self, message: str = "Invalid type parameter"):
        super().__init__(message)


class InsufficientCredits(BillingError):
    status_code = 403

    def __init__(self, message: str = "Insufficient email credits"):
        super().__init__(message)


class UpstreamError(BillingError):
    status_code = 500
