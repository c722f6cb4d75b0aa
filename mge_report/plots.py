from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from mge_report.classifier import FAILURE_RATES

FIG_WIDTH = 7
FIG_HEIGHT = 5
DPI = 150

METRIC_LABELS = {
    'valid_rate': 'Valid Sequences',
    'ambig_fail_rate': 'Ambiguity Failures',
    'length_fail_rate': 'Length Failures',
    'tax_fail_rate': 'Taxonomic Failures',
    'stop_codon_rate': 'Stop Codon Failures',
}


def _save(fig, path: Path) -> Path:
    fig.tight_layout()
    fig.savefig(path, dpi=DPI)
    plt.close(fig)
    return path


def _param_label(value: float) -> str:
    return f"{value:g}"


def _age_bin_order(age_bins: pd.Series) -> list:
    """Age bin labels in ascending order, shared by all institutions."""
    if isinstance(age_bins.dtype, pd.CategoricalDtype):
        present = set(age_bins.dropna().astype(str))
        return [str(label) for label in age_bins.cat.categories if str(label) in present]
    return sorted(set(age_bins.dropna().astype(str)), key=lambda label: float(label.split('-')[0]))


def validation_heatmap(breakdown: pd.DataFrame, path: Path) -> Path:
    """
    Heatmap of the valid rate per (r, s) combination, one panel per institution.

    :param breakdown: Output of ValidityClassifier.parameter_breakdown
    :param path: Output image path
    :return: The path written
    """
    institutions = sorted(breakdown['institution'].unique())
    fig, axes = plt.subplots(1, max(len(institutions), 1), figsize=(FIG_WIDTH * 1.5, FIG_HEIGHT), squeeze=False)
    image = None
    for ax, institution in zip(axes[0], institutions):
        subset = breakdown[breakdown['institution'] == institution]
        grid = subset.pivot_table(index='s_param', columns='r_param', values='valid_rate')
        image = ax.imshow(grid.values, origin='lower', aspect='auto', cmap='viridis', vmin=0, vmax=100)
        ax.set_xticks(range(len(grid.columns)), [_param_label(v) for v in grid.columns])
        ax.set_yticks(range(len(grid.index)), [_param_label(v) for v in grid.index])
        ax.set_xlabel('Read Length Multiplier (r)')
        ax.set_ylabel('Sequence Similarity Threshold (s)')
        ax.set_title(institution)
    if image is not None:
        fig.colorbar(image, ax=axes[0].tolist(), label='Valid Sequences (%)')
    fig.suptitle('Validation Success Rate by Parameter Combination')
    return _save(fig, path)


def failure_breakdown(breakdown: pd.DataFrame, path: Path) -> Path:
    """
    Grouped bars of the valid rate and each failure rate per r, coloured by s, in a grid of
    metric (rows) by institution (columns).

    :param breakdown: Output of ValidityClassifier.parameter_breakdown
    :param path: Output image path
    :return: The path written
    """
    metrics = ['valid_rate'] + list(FAILURE_RATES.values())
    institutions = sorted(breakdown['institution'].unique())
    s_values = sorted(breakdown['s_param'].unique())
    colours = plt.cm.viridis(np.linspace(0, 1, max(len(s_values), 1)))

    fig, axes = plt.subplots(len(metrics), max(len(institutions), 1),
                             figsize=(FIG_WIDTH * 1.5, FIG_HEIGHT * 2), squeeze=False, sharex='col')
    for col, institution in enumerate(institutions):
        subset = breakdown[breakdown['institution'] == institution]
        r_values = sorted(subset['r_param'].unique())
        positions = np.arange(len(r_values))
        bar_width = 0.8 / max(len(s_values), 1)
        for row, metric in enumerate(metrics):
            ax = axes[row][col]
            for i, s_value in enumerate(s_values):
                bars = subset[subset['s_param'] == s_value].set_index('r_param')[metric].reindex(r_values)
                ax.bar(positions + i * bar_width, bars.values, width=bar_width, color=colours[i],
                       label=_param_label(s_value))
            ax.set_xticks(positions + bar_width * (len(s_values) - 1) / 2, [_param_label(v) for v in r_values])
            if col == 0:
                ax.set_ylabel(f"{METRIC_LABELS[metric]}\n(%)")
            if row == 0:
                ax.set_title(institution)
        axes[-1][col].set_xlabel('Read Length Multiplier (r)')
    axes[0][-1].legend(title='Similarity\nThreshold (s)', loc='upper left', bbox_to_anchor=(1.0, 1.0))
    fig.suptitle('Parameter Effects on Validation Success and Failure Modes')
    return _save(fig, path)


def success_by_age(summary: pd.DataFrame, path: Path) -> Path:
    """
    Specimen success rate per age bin with 95% confidence intervals, one line per institution.

    :param summary: Output of summarise_success grouped by institution and age_bin
    :param path: Output image path
    :return: The path written
    """
    bins = _age_bin_order(summary['age_bin'])
    position = {label: i for i, label in enumerate(bins)}

    fig, ax = plt.subplots(figsize=(FIG_WIDTH, FIG_HEIGHT))
    for institution, subset in summary.groupby('institution', sort=True):
        subset = subset.assign(x=subset['age_bin'].astype(str).map(position)).sort_values('x')
        errors = [subset['success_rate'] - subset['ci_lower'], subset['ci_upper'] - subset['success_rate']]
        ax.errorbar(subset['x'], subset['success_rate'], yerr=errors,
                    marker='o', capsize=3, label=institution)
    ax.set_xticks(range(len(bins)), bins)
    ax.set_xlabel('Specimen Age (years)')
    ax.set_ylabel('Specimens with a Valid Barcode (%)')
    ax.set_ylim(0, 100)
    ax.set_title('Validation Success by Specimen Age')
    ax.legend()
    return _save(fig, path)
