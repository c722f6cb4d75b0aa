import logging
from enum import Enum
from typing import List, Optional

import pandas as pd


class IssueKind(Enum):
    PARSE = "parse"
    DUPLICATE_KEY = "duplicate_key"


class DataIssue:
    """
    A single data-quality problem found while building the report. Issues never abort the run,
    they are collected so that an operator can review them afterwards.
    """

    def __init__(self, kind: IssueKind, source: str, message: str, key: Optional[str] = None):
        self.kind = kind
        self.source = source
        self.message = message
        self.key = key

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'source': self.source,
            'key': self.key,
            'message': self.message,
        }

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.source}: {self.message}"


class IssueLog:
    """
    Collects DataIssue objects and forwards each of them to a logger at WARNING level.

    Examples:
        >>> log = IssueLog()
        >>> log.add(IssueKind.PARSE, 'lab.tsv', "Unparseable date 'spring 1990'", key='BGE001-24')
        >>> len(log)
        1
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger
        self.issues: List[DataIssue] = []

    def add(self, kind: IssueKind, source: str, message: str, key: Optional[str] = None) -> None:
        issue = DataIssue(kind, source, message, key)
        self.issues.append(issue)
        if self.logger is not None:
            self.logger.warning(str(issue))

    def of_kind(self, kind: IssueKind) -> List[DataIssue]:
        return [issue for issue in self.issues if issue.kind == kind]

    def to_frame(self) -> pd.DataFrame:
        """
        Tabulate the collected issues.
        :return: A DataFrame with one row per issue
        """
        return pd.DataFrame([issue.to_dict() for issue in self.issues],
                            columns=['kind', 'source', 'key', 'message'])

    def __len__(self) -> int:
        return len(self.issues)

    def __iter__(self):
        return iter(self.issues)
