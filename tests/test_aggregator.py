import math

import pandas as pd
import pytest

from mge_report.aggregator import (
    specimen_outcomes, summarise_success, wald_interval, bin_ages, optimal_parameters, SUMMARY_COLUMNS
)


@pytest.fixture
def records():
    return pd.DataFrame({
        'institution': ['NHM', 'NHM', 'NHM', 'NHM', 'Naturalis', 'Naturalis', 'Naturalis'],
        'process_id': ['P1', 'P1', 'P2', 'P3', 'P1', 'P1', 'P2'],
        'Order': ['Hymenoptera', 'Hymenoptera', 'Coleoptera', None, 'Hymenoptera', 'Hymenoptera', 'Coleoptera'],
        'is_valid': [False, True, False, False, True, True, False],
    })


def test_specimen_outcomes(records):
    outcomes = specimen_outcomes(records, ['institution'])
    assert len(outcomes) == 5
    p1 = outcomes[(outcomes['institution'] == 'NHM') & (outcomes['process_id'] == 'P1')].iloc[0]
    assert p1['attempts'] == 2
    assert p1['any_valid']
    p2 = outcomes[(outcomes['institution'] == 'NHM') & (outcomes['process_id'] == 'P2')].iloc[0]
    assert not p2['any_valid']


def test_summarise_success(records):
    summary = summarise_success(records, ['institution'])
    assert list(summary.columns) == ['institution'] + SUMMARY_COLUMNS
    assert summary['institution'].tolist() == ['NHM', 'Naturalis']

    nhm = summary.iloc[0]
    assert nhm['total_specimens'] == 3
    assert nhm['specimens_with_valid'] == 1
    assert nhm['success_rate'] == pytest.approx(100 / 3)
    assert nhm['avg_attempts'] == pytest.approx(4 / 3)

    naturalis = summary.iloc[1]
    assert naturalis['success_rate'] == 50.0
    assert naturalis['avg_attempts'] == 1.5


def test_summarise_success_bounds(records):
    summary = summarise_success(records, ['institution'])
    assert (summary['specimens_with_valid'] <= summary['total_specimens']).all()
    assert summary['success_rate'].between(0, 100).all()
    assert (summary['ci_lower'] <= summary['success_rate']).all()
    assert (summary['success_rate'] <= summary['ci_upper']).all()


def test_summarise_success_by_order(records):
    summary = summarise_success(records, ['institution', 'Order'])
    # the specimen without an order is left out
    assert summary[['institution', 'Order']].values.tolist() == [
        ['NHM', 'Coleoptera'], ['NHM', 'Hymenoptera'], ['Naturalis', 'Coleoptera'], ['Naturalis', 'Hymenoptera']
    ]
    assert summary['total_specimens'].sum() == 4


def test_summarise_success_where_and_min_specimens(records):
    summary = summarise_success(records, ['institution', 'Order'],
                                where=lambda df: df['Order'] == 'Hymenoptera')
    assert summary['Order'].unique().tolist() == ['Hymenoptera']

    summary = summarise_success(records, ['institution'], min_specimens=3)
    assert summary['institution'].tolist() == ['NHM']


def test_summarise_success_without_keys(records):
    summary = summarise_success(records)
    assert len(summary) == 1
    assert summary['total_specimens'].iloc[0] == 3
    assert summary['specimens_with_valid'].iloc[0] == 1


def test_wald_interval():
    lower, upper = wald_interval(50.0, 100)
    assert lower == pytest.approx(40.2, abs=0.01)
    assert upper == pytest.approx(59.8, abs=0.01)

    assert wald_interval(100.0, 10) == (100.0, 100.0)
    assert wald_interval(0.0, 10) == (0.0, 0.0)

    lower, upper = wald_interval(10.0, 4)
    assert lower == 0.0
    assert upper < 100.0

    lower, upper = wald_interval(50.0, 0)
    assert math.isnan(lower) and math.isnan(upper)


@pytest.mark.parametrize("age, expected", [
    (0.0, "0-20"),
    (5.0, "0-20"),
    (20.0, "0-20"),
    (20.5, "20-40"),
    (74.3, "60-80"),
    (200.0, "180-200"),
])
def test_bin_ages(age, expected):
    assert bin_ages(pd.Series([age])).iloc[0] == expected


@pytest.mark.parametrize("age", [-1.0, 200.5, float('nan')])
def test_bin_ages_out_of_range(age):
    assert pd.isna(bin_ages(pd.Series([age])).iloc[0])


def test_bin_ages_labels():
    bins = bin_ages(pd.Series([1.0]), width=50, upper=120)
    assert list(bins.cat.categories) == ["0-50", "50-100", "100-120"]


def test_optimal_parameters():
    breakdown = pd.DataFrame({
        'institution': ['NHM', 'NHM', 'NHM', 'Naturalis', 'Naturalis'],
        'r_param': [1.3, 1.5, 1.3, 1.3, 1.5],
        's_param': [50.0, 50.0, 100.0, 50.0, 50.0],
        'valid_rate': [50.0, 0.0, 50.0, 100.0, 0.0],
    })
    optimal = optimal_parameters(breakdown)
    # ties are kept
    assert optimal[['institution', 'r_param', 's_param']].values.tolist() == [
        ['NHM', 1.3, 50.0], ['NHM', 1.3, 100.0], ['Naturalis', 1.3, 50.0]
    ]


if __name__ == '__main__':
    pytest.main()
