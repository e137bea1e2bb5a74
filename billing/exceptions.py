from __future__ import annotations


class BillingError(Exception):
    """Base class for errors raised by the billing services."""


class ValidationError(BillingError):
    """Malformed input, rejected before anything is written."""


class BlueprintError(ValidationError):
    """A recurring template's stored blueprint cannot be turned into line items."""


class NotFoundError(BillingError):
    pass


class InvoiceNotFound(NotFoundError):
    pass


class TemplateNotFound(NotFoundError):
    pass


class InvalidTransition(BillingError):
    """The requested status change is not allowed from the invoice's current state."""


class ConflictError(BillingError):
    pass


class InvoiceNumberConflict(ConflictError):
    """Every allocated invoice number collided with an existing invoice."""


class TemplateBusy(ConflictError):
    """The template is locked by another runner or is no longer due."""


class PersistenceError(BillingError):
    """A database failure aborted the current unit of work; nothing was kept."""


class PartialBatchFailure(BillingError):
    def __init__(self, report):
        self.report = report
        super().__init__(
            f"{len(report.failed)} of {report.total} recurring templates failed on {report.as_of.isoformat()}."
        )
