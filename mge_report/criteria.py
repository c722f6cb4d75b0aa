from typing import Dict, Any

import pandas as pd
from nbitk.config import Config


class ValidityCriteria:
    """
    Thresholds that decide whether a validation attempt produced a usable barcode.

    The defaults follow BOLD's BIN compliance requirements for COI-5P as applied to the MGE
    benchmark: at least 500 bases in the barcode region, at most 6 ambiguous bases and no stop
    codons. They can be overridden through the 'criteria' section of the configuration.

    Every check treats a missing operand as a failure, so that a record with, say, no recorded
    length is never counted as valid.

    Examples:
        >>> criteria = ValidityCriteria()
        >>> criteria.min_length
        500
        >>> criteria.max_ambiguities
        6
        >>> criteria.max_stop_codons
        0
    """

    def __init__(self, config: Config = None):
        """
        Initialize criteria with optional configuration data.

        :param config: Optional Config object containing configuration data to override defaults
        """
        self.min_length: int = 500
        self.max_ambiguities: int = 6
        self.max_stop_codons: int = 0
        self.no_error: str = 'None'  # the validator writes this literal when nothing went wrong

        if config:
            self.update_from_config(config)

    def update_from_config(self, config: Config) -> None:
        """
        Update criteria from configuration data.

        :param config: Config object containing configuration data
        """
        criteria = config.get('criteria')
        if criteria:
            if criteria.get('min_length') is not None:
                self.min_length = int(criteria.get('min_length'))
            if criteria.get('max_ambiguities') is not None:
                self.max_ambiguities = int(criteria.get('max_ambiguities'))
            if criteria.get('max_stop_codons') is not None:
                self.max_stop_codons = int(criteria.get('max_stop_codons'))

    def has_length(self, df: pd.DataFrame) -> pd.Series:
        return df['nuc_basecount'].notna()

    def check_ambiguities(self, df: pd.DataFrame) -> pd.Series:
        # comparisons against NaN are False
        return df['ambig_basecount'] <= self.max_ambiguities

    def check_length(self, df: pd.DataFrame) -> pd.Series:
        return df['nuc_basecount'] >= self.min_length

    def check_error(self, df: pd.DataFrame) -> pd.Series:
        return df['error'] == self.no_error

    def check_stop_codons(self, df: pd.DataFrame) -> pd.Series:
        return df['stop_codons'] <= self.max_stop_codons

    def check_taxonomy(self, df: pd.DataFrame) -> pd.Series:
        """
        Check that the expected identification occurs, as an exact case-sensitive substring,
        in the string of observed taxa.
        """
        return pd.Series(
            [taxon_found(identification, obs_taxon) is True
             for identification, obs_taxon in zip(df['identification'], df['obs_taxon'])],
            index=df.index,
            dtype=bool
        )

    def passes_all_checks(self, df: pd.DataFrame) -> pd.Series:
        """
        Evaluate the conjunction of all criteria for every row.

        :param df: Validation table
        :return: Boolean Series, True where a record passes every check
        """
        return (
            self.has_length(df) &
            self.check_ambiguities(df) &
            self.check_length(df) &
            self.check_error(df) &
            self.check_stop_codons(df) &
            self.check_taxonomy(df)
        ).astype(bool)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'min_length': self.min_length,
            'max_ambiguities': self.max_ambiguities,
            'max_stop_codons': self.max_stop_codons,
        }

    def __str__(self) -> str:
        return (f"Validity criteria: min_length={self.min_length}, "
                f"max_ambiguities={self.max_ambiguities}, "
                f"max_stop_codons={self.max_stop_codons}")


def taxon_found(identification, obs_taxon):
    """
    Substring test between the expected identification and the observed taxa.

    :return: True or False, or None if either operand is missing
    """
    if pd.isna(identification) or pd.isna(obs_taxon):
        return None
    return str(identification) in str(obs_taxon)
