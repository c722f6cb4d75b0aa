import pandas as pd
from nbitk.config import Config
from nbitk.logger import get_formatted_logger

from mge_report.constants import DuplicateKeyPolicy, PROCESS_ID_COLUMN, SAMPLE_ID_COLUMN
from mge_report.issues import IssueLog, IssueKind


class DuplicateKeyError(Exception):
    """Raised when a key that must be unique occurs more than once and the policy is to fail."""
    pass


class LinkageEngine:
    """
    Links validation attempts to the specimen they were made for, and from there to the
    specimen's taxonomy:

    1. validation records are left-joined to the lab sheet on process_id = Process ID
    2. the result is left-joined to the taxonomy sheet on Sample ID

    Both joins are left joins: validation attempts whose process ID is not in the lab sheet
    (negative controls, unsequenced or excluded specimens) are kept with missing metadata. The
    lab sheet and taxonomy sheet are expected to be keyed uniquely. This is checked before
    joining, so that a duplicated key never multiplies validation rows.
    """

    def __init__(self, config: Config, policy: DuplicateKeyPolicy = DuplicateKeyPolicy.KEEP_FIRST):
        """
        Initialize the linkage engine.

        :param config: Configuration object
        :param policy: What to do with duplicated keys in the lab sheet or taxonomy sheet
        """
        self.logger = get_formatted_logger(self.__class__.__name__, config)
        self.policy = policy

    def link(self, validation: pd.DataFrame, lab_sheet: pd.DataFrame, taxonomy: pd.DataFrame,
             issues: IssueLog) -> pd.DataFrame:
        """
        Join validation records with lab sheet and taxonomy.

        :param validation: Validation table with a process_id column
        :param lab_sheet: Lab sheet as loaded by TableLoader.load_lab_sheet
        :param taxonomy: Taxonomy sheet as loaded by TableLoader.load_taxonomy
        :param issues: Collector for cardinality warnings
        :return: A new DataFrame with the same rows, in the same order, as the validation table
        :raises DuplicateKeyError: If keys are duplicated and the policy is ERROR
        """
        lab, tax = self.prepare_metadata(lab_sheet, taxonomy, issues)

        # Columns the validation side already carries would get suffixed by the merge
        tax = tax.drop(columns=[c for c in tax.columns if c in validation.columns and c != SAMPLE_ID_COLUMN])
        lab = lab.drop(columns=[c for c in lab.columns if c in validation.columns and c != PROCESS_ID_COLUMN])

        joined = validation.merge(lab, how='left', left_on='process_id', right_on=PROCESS_ID_COLUMN,
                                  sort=False, validate='many_to_one')
        joined = joined.drop(columns=[PROCESS_ID_COLUMN])
        joined = joined.merge(tax, how='left', on=SAMPLE_ID_COLUMN, sort=False, validate='many_to_one')
        joined.index = validation.index

        matched = int(joined[SAMPLE_ID_COLUMN].notna().sum())
        self.logger.info(f"Linked {matched} of {len(joined)} validation records to the lab sheet")
        return joined

    def prepare_metadata(self, lab_sheet: pd.DataFrame, taxonomy: pd.DataFrame, issues: IssueLog):
        """
        Enforce the one-to-one keys of lab sheet and taxonomy sheet and drop rows without a key.
        Tables that are already unique come back unchanged, so this can be applied once up front
        when the same sheets are linked to several validation tables.

        :param lab_sheet: Lab sheet as loaded by TableLoader.load_lab_sheet
        :param taxonomy: Taxonomy sheet as loaded by TableLoader.load_taxonomy
        :param issues: Collector for cardinality warnings
        :return: Tuple of (lab sheet, taxonomy) ready for joining
        :raises DuplicateKeyError: If keys are duplicated and the policy is ERROR
        """
        lab = self.unique_by(lab_sheet, PROCESS_ID_COLUMN, 'lab sheet', issues)
        lab = self.unique_by(lab, SAMPLE_ID_COLUMN, 'lab sheet', issues)
        tax = self.unique_by(taxonomy, SAMPLE_ID_COLUMN, 'taxonomy', issues)

        # Null keys must never match each other
        lab = lab[lab[PROCESS_ID_COLUMN].notna()]
        tax = tax[tax[SAMPLE_ID_COLUMN].notna()]
        return lab, tax

    def unique_by(self, df: pd.DataFrame, key: str, source: str, issues: IssueLog) -> pd.DataFrame:
        """
        Ensure that a key column is unique, reporting every duplicated value.

        :param df: The table to check
        :param key: The column that must be unique
        :param source: Name of the table, for reporting
        :param issues: Collector for cardinality warnings
        :return: The table, or a copy holding only the first row for each duplicated key
        :raises DuplicateKeyError: If keys are duplicated and the policy is ERROR
        """
        keys = df[key]
        duplicated = keys.notna() & keys.duplicated(keep=False)
        if not duplicated.any():
            return df

        values = sorted(keys[duplicated].unique())
        if self.policy == DuplicateKeyPolicy.ERROR:
            raise DuplicateKeyError(f"{key} is not unique in {source}: {values}")

        for value in values:
            count = int((keys == value).sum())
            issues.add(IssueKind.DUPLICATE_KEY, source,
                       f"{key} '{value}' occurs {count} times, keeping the first occurrence", key=value)
        return df[~(keys.notna() & keys.duplicated(keep='first'))].copy()
