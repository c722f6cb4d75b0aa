from unittest.mock import patch

import pandas as pd
import pytest

from mge_report import plots


@pytest.fixture
def age_summary():
    # NHM has no specimens in the youngest bin
    return pd.DataFrame({
        'institution': ['NHM', 'NHM', 'Naturalis', 'Naturalis'],
        'age_bin': ['20-40', '100-120', '0-20', '20-40'],
        'success_rate': [50.0, 0.0, 100.0, 75.0],
        'ci_lower': [10.0, 0.0, 100.0, 40.0],
        'ci_upper': [90.0, 0.0, 100.0, 100.0],
    })


def test_age_bin_order(age_summary):
    assert plots._age_bin_order(age_summary['age_bin']) == ['0-20', '20-40', '100-120']

    categorical = pd.Series(pd.Categorical(['20-40', '0-20'], categories=['0-20', '20-40', '40-60']))
    assert plots._age_bin_order(categorical) == ['0-20', '20-40']


def test_success_by_age_axis_order(age_summary, tmp_path):
    with patch('mge_report.plots._save', side_effect=lambda fig, path: fig):
        fig = plots.success_by_age(age_summary, tmp_path / "age.png")
    ax = fig.axes[0]
    assert [label.get_text() for label in ax.get_xticklabels()] == ['0-20', '20-40', '100-120']
    # the first line drawn is NHM, placed on the shared positions
    assert list(ax.lines[0].get_xdata()) == [1, 2]


def test_success_by_age_writes_file(age_summary, tmp_path):
    path = plots.success_by_age(age_summary, tmp_path / "age.png")
    assert path.exists()


if __name__ == '__main__':
    pytest.main()
