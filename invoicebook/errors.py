from __future__ import annotations


class InvoiceValidationError(ValueError):
    def __init__(self, issues: list[str]):
        self.issues = list(issues)
        super().__init__("; ".join(self.issues) or "Invoice failed validation")


class AuthenticationError(RuntimeError):
    pass


class ImportFileError(ValueError):
    pass


class UnsupportedFileError(ImportFileError):
    pass
