import math

import pandas as pd
import pytest

from mge_report.config.schema_config import SchemaConfig
from mge_report.constants import Institution
from mge_report.issues import IssueLog, IssueKind
from mge_report.parameters import (
    ParameterExtractorFactory, BracketedParameterExtractor, EmbeddedParameterExtractor
)


@pytest.fixture
def config():
    conf = SchemaConfig()
    conf.set('log_level', 'ERROR')
    return conf


def test_factory(config):
    assert isinstance(ParameterExtractorFactory.create(config, Institution.NHM), BracketedParameterExtractor)
    assert isinstance(ParameterExtractorFactory.create(config, Institution.NATURALIS), EmbeddedParameterExtractor)
    with pytest.raises(ValueError):
        ParameterExtractorFactory.create(config, "Elsewhere")


def test_bracketed(config):
    df = pd.DataFrame({
        'sequence_id': ['A-24_cox1', 'B-24_cox1', 'C-24_cox1', 'D-24_cox1'],
        'r': ['[1.3]', '[NA]', None, '[1.3, 1.5]'],
        's': ['[100]', '[50]', '[50]', '[x]'],
    })
    issues = IssueLog()
    result = BracketedParameterExtractor(config).extract(df, issues)

    assert result['r_param'].iloc[0] == 1.3
    assert result['s_param'].iloc[0] == 100
    assert math.isnan(result['r_param'].iloc[1])
    assert result['s_param'].iloc[1] == 50
    assert math.isnan(result['r_param'].iloc[2])
    assert math.isnan(result['r_param'].iloc[3])
    assert math.isnan(result['s_param'].iloc[3])

    # only genuinely malformed values are reported, not the null tokens
    assert len(issues) == 2
    assert {issue.key for issue in issues} == {'D-24_cox1'}
    assert all(issue.kind == IssueKind.PARSE for issue in issues)

    # the input is left untouched
    assert 'r_param' not in df.columns


def test_bracketed_without_parameter_columns(config):
    df = pd.DataFrame({'sequence_id': ['A-24_r_1.3_s_50']})
    issues = IssueLog()
    result = BracketedParameterExtractor(config).extract(df, issues)
    assert result['r_param'].isna().all()
    assert result['s_param'].isna().all()
    assert len(issues) == 0


def test_embedded(config):
    df = pd.DataFrame({
        'sequence_id': ['BGE00123-NC_r_1.3_s_100', 'BGE00124-24_r_1_s_50_fastp', 'BGE00125-24'],
    })
    issues = IssueLog()
    result = EmbeddedParameterExtractor(config).extract(df, issues)

    assert list(result['r_param'].iloc[:2]) == [1.3, 1.0]
    assert list(result['s_param'].iloc[:2]) == [100.0, 50.0]
    assert result.iloc[2][['r_param', 's_param']].isna().all()
    assert len(issues) == 0


if __name__ == '__main__':
    pytest.main()
