"""Exceptions raised when an uploaded workbook cannot be turned into records."""


class AttendanceCoreError(Exception):
    """Base exception for attendance workbook errors."""
    pass


class WorkbookReadError(AttendanceCoreError):
    """The file is not a readable spreadsheet (bad binary, unsupported extension)."""

    message = "Failed to parse the file. Please check the format."

    def __init__(self, filename: str = "", detail: str = ""):
        self.filename = filename
        self.detail = detail
        super().__init__(self.message)


class NoValidRowsError(AttendanceCoreError):
    """The file was read but produced zero records."""

    def __init__(self, kind: str, expected_headers=()):
        self.kind = kind
        self.expected_headers = tuple(expected_headers)
        msg = f"No valid rows found in the {kind} file."
        if self.expected_headers:
            msg += " Check column headers: " + " · ".join(self.expected_headers) + "."
        super().__init__(msg)
