"""
Ledger export loading (CSV and Excel).
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional
from pathlib import Path
import logging

import pandas as pd

from config import DataSourceConfig
from .models import LedgerSchemaError

logger = logging.getLogger(__name__)


class DataSourceLoader(ABC):
    """Abstract base for ledger export loaders."""

    @abstractmethod
    def load(self, source_path: Path, config: DataSourceConfig) -> pd.DataFrame:
        """Load data from source and return DataFrame."""
        pass

    def _validate(self, df: pd.DataFrame, config: DataSourceConfig, origin: str) -> pd.DataFrame:
        is_valid, missing = config.column_mapping.validate(df.columns.tolist())
        if not is_valid:
            logger.error(f"[IO] Missing columns in {origin}: {missing}")
            raise LedgerSchemaError(f"Missing required columns for {config.name}: {missing}")
        logger.info(f"[IO] Loaded {len(df)} rows from {origin}")
        return df


class CsvSourceLoader(DataSourceLoader):
    """Load a ledger export from a CSV file."""

    def load(self, source_path: Path, config: DataSourceConfig) -> pd.DataFrame:
        df = pd.read_csv(source_path)
        return self._validate(df, config, f"'{Path(source_path).name}'")


class ExcelSourceLoader(DataSourceLoader):
    """Load a ledger export from an Excel workbook."""

    def load_all_sheets(self, file_path: Path) -> Dict[str, pd.DataFrame]:
        """Load all sheets from Excel file."""
        sheets = pd.read_excel(file_path, sheet_name=None)
        logger.debug(f"[IO] Found {len(sheets)} sheets: {list(sheets.keys())}")
        return sheets

    def detect_sheet(self, sheets: Dict[str, pd.DataFrame], config: DataSourceConfig) -> Optional[str]:
        """
        Detect which sheet holds the ledger.

        First tries to match by keywords in sheet name.
        Then validates by required columns.
        """
        for sheet_name in sheets.keys():
            sheet_lower = sheet_name.lower()
            if any(keyword.lower() in sheet_lower for keyword in config.detection_keywords):
                is_valid, _ = config.column_mapping.validate(sheets[sheet_name].columns.tolist())
                if is_valid:
                    return sheet_name

        # Fall back to column validation only
        for sheet_name, df in sheets.items():
            is_valid, _ = config.column_mapping.validate(df.columns.tolist())
            if is_valid:
                return sheet_name

        return None

    def load(self, source_path: Path, config: DataSourceConfig) -> pd.DataFrame:
        """Load the ledger sheet from Excel."""
        sheets = self.load_all_sheets(source_path)
        sheet_name = self.detect_sheet(sheets, config)

        if sheet_name is None:
            logger.error(
                f"[IO] Could not detect sheet for '{config.name}' "
                f"(keywords: {config.detection_keywords}, sheets: {list(sheets.keys())})"
            )
            raise LedgerSchemaError(
                f"Could not detect sheet for {config.name}. "
                f"Required columns: {config.column_mapping.required_columns}"
            )

        logger.debug(f"[IO] Detected sheet '{sheet_name}' for '{config.name}'")
        return self._validate(sheets[sheet_name], config, f"sheet '{sheet_name}'")


LOADERS_BY_SUFFIX = {
    ".csv": CsvSourceLoader,
    ".xlsx": ExcelSourceLoader,
}


def load_ledger(file_path: Path, config: DataSourceConfig) -> pd.DataFrame:
    """
    Load a raw ledger export, picking the loader from the file suffix.

    Raises:
        ValueError: unsupported file type
    """
    suffix = Path(file_path).suffix.lower()
    loader_cls = LOADERS_BY_SUFFIX.get(suffix)
    if loader_cls is None:
        raise ValueError(f"Unsupported ledger file type '{suffix}'. Expected one of {sorted(LOADERS_BY_SUFFIX)}")
    return loader_cls().load(Path(file_path), config)
