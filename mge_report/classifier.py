from typing import Dict, List

import numpy as np
import pandas as pd
from nbitk.config import Config
from nbitk.logger import get_formatted_logger

from mge_report.criteria import ValidityCriteria, taxon_found

# Diagnostic failure flags and the names of the rates derived from them
FAILURE_RATES = {
    'ambig_fail': 'ambig_fail_rate',
    'length_fail': 'length_fail_rate',
    'tax_fail': 'tax_fail_rate',
    'stop_codon_fail': 'stop_codon_rate',
}

PARAMETER_KEYS = ['institution', 'r_param', 's_param']


class ValidityClassifier:
    """
    Decides for each validation attempt whether it yielded a valid barcode, and breaks failures
    down by criterion.

    The pass/fail decision is a strict conjunction of all criteria. The failure flags used for
    diagnostics are computed independently of each other and of the pass/fail decision, so a
    single record can count towards several failure rates. A flag is missing where its operand
    is missing, and missing flags are left out of the corresponding rate.
    """

    def __init__(self, config: Config, criteria: ValidityCriteria = None):
        """
        :param config: Configuration object
        :param criteria: Thresholds to apply; defaults are read from the configuration
        """
        self.logger = get_formatted_logger(self.__class__.__name__, config)
        self.criteria = criteria if criteria is not None else ValidityCriteria(config)

    def classify(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Return a copy of the table with an is_valid column.

        :param df: Joined validation table
        :return: A new DataFrame
        """
        result = df.copy()
        result['is_valid'] = self.criteria.passes_all_checks(df)
        self.logger.info(f"{int(result['is_valid'].sum())} of {len(result)} attempts pass ({self.criteria})")
        return result

    def failure_values(self, df: pd.DataFrame) -> Dict[str, np.ndarray]:
        """
        Compute every failure flag as floats: 1.0 for failed, 0.0 for passed, NaN if undefined.
        """
        taxonomy = [taxon_found(i, o) for i, o in zip(df['identification'], df['obs_taxon'])]
        tax_fail = np.array([np.nan if found is None else float(not found) for found in taxonomy], dtype=float)
        return {
            'ambig_fail': _flag(df['ambig_basecount'] > self.criteria.max_ambiguities, df['ambig_basecount']),
            'length_fail': _flag(df['nuc_basecount'] < self.criteria.min_length, df['nuc_basecount']),
            'tax_fail': tax_fail,
            'stop_codon_fail': _flag(df['stop_codons'] > self.criteria.max_stop_codons, df['stop_codons']),
        }

    def failure_flags(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Return a copy of the table with the four diagnostic failure flags as nullable booleans.

        :param df: Validation table
        :return: A new DataFrame
        """
        result = df.copy()
        for name, values in self.failure_values(df).items():
            result[name] = pd.array([None if np.isnan(v) else bool(v) for v in values], dtype='boolean')
        return result

    def parameter_breakdown(self, df: pd.DataFrame, keys: List[str] = None) -> pd.DataFrame:
        """
        Summarise validity and failure rates per parameter combination. Records whose grouping
        keys are missing are left out.

        :param df: Classified validation table (with is_valid), typically without controls
        :param keys: Grouping columns, institution and both MGE parameters by default
        :return: DataFrame with total_attempts, valid_rate and the four failure rates per group
        """
        keys = keys or PARAMETER_KEYS
        frame = df[keys].copy()
        frame['is_valid'] = df['is_valid'].astype(float)
        for name, values in self.failure_values(df).items():
            frame[FAILURE_RATES[name]] = values

        grouped = frame.groupby(keys, dropna=True, sort=True, observed=True)
        summary = grouped.mean() * 100
        summary = summary.rename(columns={'is_valid': 'valid_rate'})
        summary.insert(0, 'total_attempts', grouped.size())
        summary = summary.reset_index()
        return summary[keys + ['total_attempts', 'valid_rate'] + list(FAILURE_RATES.values())]


def _flag(condition: pd.Series, operand: pd.Series) -> np.ndarray:
    return np.where(operand.notna(), condition.astype(float), np.nan)
