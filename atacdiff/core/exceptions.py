"""
Custom exception classes for atacdiff.

Provides clear, module-specific error types so that a failed batch run
names the file, row or region that caused it.
"""


class AtacDiffError(Exception):
    """Base exception for all atacdiff errors."""
    pass


# ============================================================================
# Input / File errors
# ============================================================================

class FileFormatError(AtacDiffError):
    """Raised when an input file has an unexpected or invalid format."""

    def __init__(self, message: str, path=None, line: int = None):
        location = ""
        if path is not None:
            location = f"{path}"
            if line is not None:
                location += f" (line {line})"
            location += ": "
        super().__init__(f"{location}{message}")
        self.path = path
        self.line = line


class PeakFileFormatError(FileFormatError):
    """Raised when a BED/narrowPeak file is malformed."""
    pass


class BlacklistFormatError(FileFormatError):
    """Raised when a blacklist BED file is malformed."""
    pass


class CountTableFormatError(FileFormatError):
    """Raised when a read count table is malformed."""
    pass


class GTFParseError(FileFormatError):
    """Raised when a GTF/GFF annotation file cannot be parsed."""
    pass


class CurationFileError(FileFormatError):
    """Raised when a manual curation file cannot be parsed or validated."""
    pass


# ============================================================================
# Data validation errors
# ============================================================================

class ValidationError(AtacDiffError):
    """Raised when input data fails validation checks."""
    pass


class MissingColumnError(ValidationError):
    """Raised when a required column is missing from a DataFrame."""

    def __init__(self, column: str, dataframe_name: str = "DataFrame", available: list = None):
        available_str = f" Available columns: {available}" if available else ""
        super().__init__(
            f"Required column '{column}' not found in {dataframe_name}.{available_str}"
        )
        self.column = column
        self.available = available


class InsufficientSamplesError(ValidationError):
    """Raised when there are too few samples for an analysis."""

    def __init__(self, required: int, actual: int, context: str = "analysis"):
        super().__init__(
            f"Insufficient samples for {context}: need at least {required}, got {actual}"
        )
        self.required = required
        self.actual = actual


class EmptyDataError(ValidationError):
    """Raised when data is empty where it should not be."""

    def __init__(self, data_name: str = "data"):
        super().__init__(f"Empty {data_name} provided where non-empty data is required")
        self.data_name = data_name


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is out of valid range."""

    def __init__(self, param: str, value, valid_range: str = ""):
        msg = f"Invalid value for '{param}': {value}"
        if valid_range:
            msg += f". Expected: {valid_range}"
        super().__init__(msg)
        self.param = param
        self.value = value


class InvalidRegionError(ValidationError):
    """Raised when region coordinates violate 0 <= start < end."""
    pass


class MalformedRegionIdError(ValidationError):
    """Raised when a string cannot be parsed as ``chrom:start-end``."""

    def __init__(self, value):
        super().__init__(f"Malformed region id: {value!r} (expected 'chrom:start-end')")
        self.value = value


class SampleSheetError(ValidationError):
    """Raised when the sample sheet is inconsistent."""
    pass


class CrossChromosomeError(ValidationError, AssertionError):
    """Raised when a distance is requested between regions on different chromosomes."""

    def __init__(self, chrom_a: str, chrom_b: str):
        super().__init__(
            f"Cannot compare regions on different chromosomes: {chrom_a} vs {chrom_b}"
        )
        self.chrom_a = chrom_a
        self.chrom_b = chrom_b


# ============================================================================
# Analysis errors
# ============================================================================

class AnalysisError(AtacDiffError):
    """Base class for analysis-specific errors."""
    pass


class DifferentialAnalysisError(AnalysisError):
    """Raised when differential accessibility testing fails."""
    pass


class CountingError(AnalysisError):
    """Raised when reads cannot be counted in regions."""
    pass


class PeakAnnotationError(AnalysisError):
    """Raised when nearest-feature annotation fails."""
    pass


# ============================================================================
# Validation helpers
# ============================================================================

def validate_dataframe(
    df,
    name: str = "DataFrame",
    required_columns: list = None,
    min_rows: int = 0,
) -> None:
    """Validate a DataFrame has expected shape and columns.

    Parameters
    ----------
    df : pd.DataFrame
        The DataFrame to validate.
    name : str
        Human-readable name for error messages.
    required_columns : list, optional
        Columns that must be present.
    min_rows : int
        Minimum number of rows required.

    Raises
    ------
    EmptyDataError
        If df is None or empty and min_rows > 0.
    MissingColumnError
        If a required column is missing.
    """
    import pandas as pd

    if df is None:
        raise EmptyDataError(name)

    if not isinstance(df, pd.DataFrame):
        raise ValidationError(f"Expected DataFrame for {name}, got {type(df).__name__}")

    if min_rows > 0 and len(df) < min_rows:
        if len(df) == 0:
            raise EmptyDataError(name)
        raise ValidationError(
            f"{name} has {len(df)} rows but at least {min_rows} are required"
        )

    if required_columns:
        for col in required_columns:
            if col not in df.columns:
                raise MissingColumnError(col, name, available=list(df.columns))


def validate_numeric_param(value, name: str, min_val=None, max_val=None) -> None:
    """Validate a numeric parameter is within acceptable bounds.

    Raises
    ------
    InvalidParameterError
        If the value is out of range.
    """
    if min_val is not None and value < min_val:
        raise InvalidParameterError(name, value, f">= {min_val}")
    if max_val is not None and value > max_val:
        raise InvalidParameterError(name, value, f"<= {max_val}")
