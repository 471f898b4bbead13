"""Error taxonomy for the trade import pipeline."""


class TradeImportError(Exception):
    """Base class for import pipeline errors."""


class ConfigurationError(TradeImportError):
    """Data root or table registry is unusable; the importer refuses to run."""


class UnrecognizedFileError(TradeImportError):
    """CSV base filename has no registered target table."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"Unknown CSV file type: {file_name}")


class RecordParseError(TradeImportError):
    """A CSV row could not be converted into a trade record."""

    def __init__(self, file_path: str, line: int, message: str):
        self.file_path = file_path
        self.line = line
        super().__init__(f"{file_path}, line {line}: {message}")


class ClearYearDataError(TradeImportError):
    """Clearing existing rows for a year failed before the import started."""
