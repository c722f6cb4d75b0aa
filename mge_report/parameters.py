import pandas as pd
from nbitk.config import Config
from nbitk.logger import get_formatted_logger

from mge_report.constants import Institution, R_MARKER, S_MARKER
from mge_report.issues import IssueLog, IssueKind
from mge_report.parsing import parse_bracketed_value, parse_embedded_value, is_null_token, strip_brackets


class ParameterExtractor:
    """
    Base class for extracting the MGE parameters r (read length multiplier) and s (sequence
    similarity threshold) from validation records. The two institutions encode the same
    parameters differently; subclasses normalise both to the numeric columns r_param and s_param.
    """

    def __init__(self, config: Config):
        self.logger = get_formatted_logger(self.__class__.__name__, config)

    def extract(self, df: pd.DataFrame, issues: IssueLog) -> pd.DataFrame:
        """
        Return a copy of the validation table with r_param and s_param added.

        :param df: Validation table
        :param issues: Collector for parse warnings
        :return: A new DataFrame
        """
        result = df.copy()
        r_values = []
        s_values = []
        for _, row in df.iterrows():
            r_param, s_param = self.parameters_for(row, issues)
            r_values.append(r_param)
            s_values.append(s_param)
        result['r_param'] = pd.Series(r_values, index=df.index, dtype='float64')
        result['s_param'] = pd.Series(s_values, index=df.index, dtype='float64')

        missing = int((result['r_param'].isna() & result['s_param'].isna()).sum())
        if missing:
            self.logger.info(f"{missing} records without any MGE parameter, "
                             f"these are excluded from parameter breakdowns")
        return result

    def parameters_for(self, row: pd.Series, issues: IssueLog):
        """Return the (r, s) pair for a single record. Must be implemented by subclasses."""
        raise NotImplementedError


class BracketedParameterExtractor(ParameterExtractor):
    """
    Parameters stored in dedicated 'r' and 's' columns as bracketed values, e.g. '[1.3]'.
    This is how the NHM validation tables carry them.
    """

    def parameters_for(self, row: pd.Series, issues: IssueLog):
        return (
            self._parse(row, 'r', issues),
            self._parse(row, 's', issues)
        )

    def _parse(self, row: pd.Series, column: str, issues: IssueLog):
        raw = row.get(column)
        value = parse_bracketed_value(raw)
        if value is None and not is_null_token(strip_brackets(raw)):
            issues.add(IssueKind.PARSE, self.__class__.__name__,
                       f"Malformed {column} parameter '{raw}', treated as missing", key=row['sequence_id'])
        return value


class EmbeddedParameterExtractor(ParameterExtractor):
    """
    Parameters embedded in the sequence identifier, e.g. 'BGE00123-24_r_1.3_s_100'.
    This is how the Naturalis validation tables carry them.
    """

    def parameters_for(self, row: pd.Series, issues: IssueLog):
        sequence_id = row['sequence_id']
        return (
            parse_embedded_value(sequence_id, R_MARKER),
            parse_embedded_value(sequence_id, S_MARKER)
        )


class ParameterExtractorFactory:
    """
    Factory class to create the parameter extractor that fits an institution's conventions.

    Examples:
        >>> extractor = ParameterExtractorFactory.create(config, Institution.NHM)
        >>> isinstance(extractor, BracketedParameterExtractor)
        True
    """

    @staticmethod
    def create(config: Config, institution: Institution) -> ParameterExtractor:
        """
        Get the parameter extractor for the given institution.

        :param config: Configuration object
        :param institution: The institution enum
        :return: An instance of the appropriate ParameterExtractor subclass
        :raises ValueError: If the institution is unknown
        """
        if institution == Institution.NHM:
            return BracketedParameterExtractor(config)
        elif institution == Institution.NATURALIS:
            return EmbeddedParameterExtractor(config)
        else:
            raise ValueError(f"Unknown institution: {institution}")
