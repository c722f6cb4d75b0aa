from datetime import datetime
from pathlib import Path
from typing import List

import pandas as pd
from nbitk.config import Config
from nbitk.logger import get_formatted_logger

from mge_report.constants import (
    Institution, REQUIRED_VALIDATION_COLUMNS, NUMERIC_VALIDATION_COLUMNS, NULL_TOKENS,
    PROCESS_ID_COLUMN, SAMPLE_ID_COLUMN, COLLECTION_DATE_COLUMN, LAB_PASSTHROUGH_COLUMNS,
    FIRST_RANK_COLUMN, LAST_RANK_COLUMN, DAYS_PER_YEAR
)
from mge_report.issues import IssueLog, IssueKind
from mge_report.parsing import extract_process_id, is_control, parse_number, parse_collection_date


class TableLoader:
    """
    Read the tab-delimited inputs of the report into DataFrames.

    All cells are read as text so that nothing is guessed by the CSV reader: only empty cells
    and 'NA' are null on read, the literal 'None' survives (the barcode validator writes it in
    the error column when there was no error). Numeric columns are then coerced explicitly, and
    values that cannot be coerced become null and are reported to the issue log.

    Examples:
        >>> loader = TableLoader(config)
        >>> nhm = loader.load_validation(Path('nhm.tsv'), Institution.NHM, issues)
        >>> nhm[['sequence_id', 'process_id', 'is_control']].head()
    """

    def __init__(self, config: Config):
        """Initialize with configuration."""
        self.config = config
        self.logger = get_formatted_logger(self.__class__.__name__, config)

    @staticmethod
    def read_tsv(file_path: Path, issues: IssueLog) -> pd.DataFrame:
        """
        Read a tab-delimited UTF-8 file with all columns as text. Rows with more fields than the
        header are skipped and reported to the issue log; rows with fewer fields are padded
        with NaN.

        :param file_path: Path to the file
        :param issues: Collector for parse warnings
        :return: DataFrame of strings, with NaN for empty and NA cells
        :raises FileNotFoundError: If the file does not exist
        """
        def skip_ragged_row(fields: List[str]) -> None:
            issues.add(IssueKind.PARSE, str(file_path),
                       f"Row with {len(fields)} fields does not match the header, row skipped",
                       key=fields[0] if fields else None)
            return None

        return pd.read_csv(
            file_path,
            sep='\t',
            dtype=str,
            keep_default_na=False,
            na_values=['', 'NA'],
            encoding='utf-8',
            engine='python',
            on_bad_lines=skip_ragged_row
        )

    @staticmethod
    def require_columns(df: pd.DataFrame, required: List[str], file_path: Path) -> None:
        """
        Check that all required columns are present.

        :raises ValueError: If any required column is missing
        """
        missing = [column for column in required if column not in df.columns]
        if missing:
            raise ValueError(f"File {file_path} is missing required columns: {missing}")

    def load_validation(self, file_path: Path, institution: Institution, issues: IssueLog) -> pd.DataFrame:
        """
        Load a validation result table and derive the process ID and control flag of every record.

        :param file_path: Path to the validation TSV
        :param institution: The institution that produced the table
        :param issues: Collector for parse warnings
        :return: DataFrame with one row per validation attempt
        """
        self.logger.info(f"Loading {institution.value} validation results from {file_path}")
        df = self.read_tsv(file_path, issues)
        self.require_columns(df, REQUIRED_VALIDATION_COLUMNS, file_path)

        df['sequence_id'] = df['sequence_id'].fillna('').str.strip()
        for column in NUMERIC_VALIDATION_COLUMNS:
            if column in df.columns:
                df[column] = self.coerce_numeric(df, column, 'sequence_id', str(file_path), issues)

        df['process_id'] = df['sequence_id'].map(extract_process_id)
        for sequence_id in df.loc[df['process_id'].isna(), 'sequence_id']:
            issues.add(IssueKind.PARSE, str(file_path),
                       f"No process ID in sequence_id '{sequence_id}', record left out of specimen counts",
                       key=sequence_id)
        df['is_control'] = df['process_id'].map(is_control)
        df['institution'] = institution.value

        n_controls = int(df['is_control'].sum())
        self.logger.info(f"Read {len(df)} records ({n_controls} controls) "
                         f"for {df['process_id'].nunique()} process IDs")
        return df

    def coerce_numeric(self, df: pd.DataFrame, column: str, key_column: str, source: str,
                       issues: IssueLog) -> pd.Series:
        """
        Convert a text column to floats. Null tokens become NaN silently, any other value that is
        not a number becomes NaN with a parse warning.

        :param df: DataFrame holding the column
        :param column: Name of the column to convert
        :param key_column: Column used to identify the offending row in warnings
        :param source: Name of the source file, for warnings
        :param issues: Collector for parse warnings
        :return: A new float Series
        """
        values = []
        for key, raw in zip(df[key_column], df[column]):
            value = parse_number(raw)
            if value is None and pd.notna(raw) and str(raw).strip() not in NULL_TOKENS:
                issues.add(IssueKind.PARSE, source,
                           f"Unparseable {column} value '{raw}', treated as missing", key=key)
            values.append(value)
        return pd.Series(values, index=df.index, dtype='float64')

    def load_lab_sheet(self, file_path: Path, report_time: datetime, issues: IssueLog) -> pd.DataFrame:
        """
        Load the BOLD lab sheet and compute the age of every specimen at the time of reporting.

        :param file_path: Path to the lab sheet TSV
        :param report_time: The instant against which specimen ages are computed
        :param issues: Collector for parse warnings
        :return: DataFrame with process ID, sample ID, collection date, age, and pass-through columns
        """
        self.logger.info(f"Loading lab sheet from {file_path}")
        df = self.read_tsv(file_path, issues)
        self.require_columns(df, [PROCESS_ID_COLUMN, SAMPLE_ID_COLUMN, COLLECTION_DATE_COLUMN], file_path)

        dates = []
        for process_id, raw in zip(df[PROCESS_ID_COLUMN], df[COLLECTION_DATE_COLUMN]):
            date = parse_collection_date(raw)
            if date is None and pd.notna(raw) and str(raw).strip() not in NULL_TOKENS:
                issues.add(IssueKind.PARSE, str(file_path),
                           f"Unparseable collection date '{raw}', age treated as missing", key=process_id)
            dates.append(date)

        lab = pd.DataFrame({
            PROCESS_ID_COLUMN: df[PROCESS_ID_COLUMN],
            SAMPLE_ID_COLUMN: df[SAMPLE_ID_COLUMN],
            'collection_date': pd.to_datetime(pd.Series(dates, index=df.index, dtype=object), errors='coerce'),
        })
        lab['specimen_age_years'] = specimen_age_years(lab['collection_date'], report_time)
        for column in LAB_PASSTHROUGH_COLUMNS:
            if column in df.columns:
                lab[column] = df[column]

        self.logger.info(f"Read {len(lab)} lab sheet rows, "
                         f"{int(lab['specimen_age_years'].notna().sum())} with a usable collection date")
        return lab

    def load_taxonomy(self, file_path: Path, issues: IssueLog) -> pd.DataFrame:
        """
        Load the BOLD taxonomy sheet, keeping the sample ID and the rank columns from Phylum
        through Species in the order in which they appear in the sheet.

        :param file_path: Path to the taxonomy TSV
        :param issues: Collector for parse warnings
        :return: DataFrame with sample ID and rank columns
        """
        self.logger.info(f"Loading taxonomy from {file_path}")
        df = self.read_tsv(file_path, issues)
        self.require_columns(df, [SAMPLE_ID_COLUMN, FIRST_RANK_COLUMN, LAST_RANK_COLUMN], file_path)

        columns = list(df.columns)
        first = columns.index(FIRST_RANK_COLUMN)
        last = columns.index(LAST_RANK_COLUMN)
        if last < first:
            raise ValueError(f"File {file_path} lists {LAST_RANK_COLUMN} before {FIRST_RANK_COLUMN}")
        ranks = [column for column in columns[first:last + 1] if column != SAMPLE_ID_COLUMN]

        self.logger.info(f"Read {len(df)} taxonomy rows with ranks {ranks}")
        return df[[SAMPLE_ID_COLUMN] + ranks].copy()


def specimen_age_years(collection_dates: pd.Series, report_time: datetime) -> pd.Series:
    """
    Compute elapsed years between collection and reporting, using 365.25-day years.
    Missing dates give missing ages.

    :param collection_dates: Series of datetime64 values (NaT for missing)
    :param report_time: The instant of report generation
    :return: Series of floats
    """
    elapsed = pd.Timestamp(report_time) - collection_dates
    return elapsed / pd.Timedelta(days=DAYS_PER_YEAR)
