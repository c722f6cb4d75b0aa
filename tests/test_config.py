import argparse
from pathlib import Path

import pytest

from mge_report.config.schema_config import SchemaConfig, ValidationError


@pytest.fixture
def config_instance():
    return SchemaConfig()


@pytest.fixture
def parser(config_instance):
    parser = argparse.ArgumentParser()
    config_instance.populate_argparse(parser)
    return parser


def test_defaults(config_instance):
    assert config_instance.get('output_dir') == "report"
    assert config_instance.get('min_specimens') == 5
    assert config_instance.get('duplicate_keys') == "keep-first"
    assert config_instance.get('plots') is True
    assert config_instance.get('log_level') == "WARNING"
    assert config_instance.get('report_date') is None
    assert config_instance.get('criteria') == {'min_length': 500, 'max_ambiguities': 6, 'max_stop_codons': 0}
    assert config_instance.get('criteria.max_stop_codons') == 0


def test_set_converts_types(config_instance):
    config_instance.set('min_specimens', '10')
    assert config_instance.get('min_specimens') == 10
    config_instance.set('lab_sheet', 'lab.tsv')
    assert config_instance.get('lab_sheet') == Path('lab.tsv')
    config_instance.set('plots', 'no')
    assert config_instance.get('plots') is False


@pytest.mark.parametrize("key, value", [
    ('min_specimens', 'many'),
    ('log_level', 'VERBOSE'),
    ('duplicate_keys', 'keep-last'),
    ('unknown_key', 'x'),
    ('criteria.max_length', '900'),
    ('min_specimens.nested', '1'),
    ('nhm_validation', None),
    ('age_bin_width', 0),
    ('age_max', '-20'),
    ('min_specimens', -1),
])
def test_set_invalid(config_instance, key, value):
    with pytest.raises(ValidationError):
        config_instance.set(key, value)


def test_load_config_disabled(config_instance):
    with pytest.raises(ValidationError):
        config_instance.load_config("config.yml")


def test_required_fields(config_instance):
    with pytest.raises(ValidationError, match="nhm_validation"):
        config_instance.validate_required_fields()

    for key in ['nhm_validation', 'naturalis_validation', 'lab_sheet', 'taxonomy_sheet']:
        config_instance.set(key, f"{key}.tsv")
    config_instance.validate_required_fields()


def test_populate_argparse(config_instance, parser):
    args = parser.parse_args([
        '--nhm-validation', 'nhm.tsv',
        '--naturalis-validation', 'naturalis.tsv',
        '--lab-sheet', 'lab.tsv',
        '--taxonomy-sheet', 'taxonomy.tsv',
        '--criteria', 'min_length=650',
        '--criteria', 'max_ambiguities=2',
        '--no-plots',
        '--orders', 'Hymenoptera,Coleoptera',
    ])
    assert args.nhm_validation == Path('nhm.tsv')
    assert args.min_specimens == 5
    assert args.plots is False

    config_instance.update_from_args(args)
    assert config_instance.get('criteria.min_length') == 650
    assert config_instance.get('criteria.max_ambiguities') == 2
    assert config_instance.get('criteria.max_stop_codons') == 0
    assert config_instance.get('plots') is False
    assert config_instance.get('orders') == 'Hymenoptera,Coleoptera'


def test_container_argument_rejects_unknown_key(parser):
    with pytest.raises(SystemExit):
        parser.parse_args([
            '--nhm-validation', 'nhm.tsv',
            '--naturalis-validation', 'naturalis.tsv',
            '--lab-sheet', 'lab.tsv',
            '--taxonomy-sheet', 'taxonomy.tsv',
            '--criteria', 'min_coverage=10',
        ])


if __name__ == '__main__':
    pytest.main()
