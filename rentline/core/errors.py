"""
Typed errors raised by the billing engine.

    RentlineError
    +-- NotFoundError       missing row, or a row owned by another organization
    +-- InvalidInputError   shape violations the schemas cannot see on their own
    +-- ConflictError       business-rule violations (exclusivity, paid invoices, ...)

Services raise these; ``rentline.main`` maps them to 404 / 422 / 409.
Cross-tenant access is always reported as not-found so that the existence of
another organization's rows never leaks.
"""


class RentlineError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(RentlineError):
    status_code = 404

    def __init__(self, label: str):
        super().__init__(f"{label} not found")
        self.label = label


class InvalidInputError(RentlineError):
    status_code = 422


class ConflictError(RentlineError):
    status_code = 409
