import pytest

from romwrangler.exceptions import (
    ArchiveError,
    BaseError,
    ConfigurationError,
    ConversionError,
    EcmFormatError,
    FileOperationError,
    OperationCancelledError,
    ProcessingError,
    ScannerError,
    SecurityError,
    SheetParseError,
    ToolNotFoundError,
    ZipSlipError,
)


def test_to_dict_shape():
    err = FileOperationError("copy failed", file_path="/x/a.bin", operation="copy")
    data = err.to_dict()
    assert data["error_code"] == "FILE_OP_ERROR"
    assert data["message"] == "copy failed"
    assert data["details"] == {"file_path": "/x/a.bin", "operation": "copy"}
    assert "timestamp" in data


@pytest.mark.parametrize("error, parent, code", [
    (ZipSlipError("x", entry="../a", base="/b"), SecurityError, "ZIP_SLIP"),
    (ToolNotFoundError("x", tool="chdman"), ConfigurationError, "TOOL_NOT_FOUND"),
    (EcmFormatError("x"), ProcessingError, "ECM_FORMAT_ERROR"),
    (SheetParseError("x"), ProcessingError, "SHEET_PARSE_ERROR"),
    (ArchiveError("x"), ProcessingError, "ARCHIVE_ERROR"),
    (ConversionError("x", exit_code=2), ProcessingError, "CONVERSION_ERROR"),
    (ScannerError("x"), BaseError, "SCANNER_ERROR"),
    (OperationCancelledError(), BaseError, "CANCELLED"),
])
def test_hierarchy_and_codes(error, parent, code):
    assert isinstance(error, parent)
    assert isinstance(error, BaseError)
    assert error.error_code == code


def test_details_carry_context():
    assert ZipSlipError("x", entry="../a", base="/b").details == {"entry": "../a", "base": "/b"}
    assert ConversionError("x", rom_path="/r/a.cue", exit_code=0).details == {
        "rom_path": "/r/a.cue", "phase": "convert", "exit_code": 0,
    }
    assert ConfigurationError("x", file_path="/c.yaml").details == {"file_path": "/c.yaml"}
    assert str(OperationCancelledError()) == "Operation cancelled"
