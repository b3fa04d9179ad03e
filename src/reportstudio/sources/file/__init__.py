"""File sources (delimited, spreadsheet, JSON)."""

from reportstudio.sources.file.connector import FileConnector
from reportstudio.sources.file.parser import FileFormat, ParsedTable, parse_file

__all__ = ["FileConnector", "FileFormat", "ParsedTable", "parse_file"]
