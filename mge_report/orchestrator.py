from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from nbitk.config import Config
from nbitk.logger import get_formatted_logger

from .aggregator import summarise_success, bin_ages, optimal_parameters
from .classifier import ValidityClassifier
from .constants import Institution, DuplicateKeyPolicy
from .criteria import ValidityCriteria
from .issues import IssueLog
from .linkage import LinkageEngine
from .loader import TableLoader
from .parameters import ParameterExtractorFactory
from . import plots

ORDER_COLUMN = 'Order'
CSV_EXPORT = 'validation_param_summary.csv'


class Report:
    """
    The outcome of one report run: the classified validation records of both institutions,
    the summary tables derived from them, and the data-quality issues met along the way.
    """

    def __init__(self, records: pd.DataFrame, tables: Dict[str, pd.DataFrame], issues: IssueLog):
        self.records = records
        self.tables = tables
        self.issues = issues

    def __getitem__(self, name: str) -> pd.DataFrame:
        return self.tables[name]


class ReportOrchestrator:
    """
    Main orchestrator for the MGE validation report.

    This class runs the pipeline once, from input files to summary tables:
    - loading validation results, lab sheet and taxonomy sheet
    - extracting the MGE parameters per institution
    - linking validation records to specimen metadata and taxonomy
    - classifying validation attempts
    - aggregating to specimen-level success and per-group summaries
    - writing tables, the CSV export and plots

    It is the only place where configuration settings are translated into internal values
    (enums, dates, lists). The pipeline stages below it receive what they need as arguments.
    """

    def __init__(self, config: Config):
        """
        Initialize the orchestrator.

        :param config: Configuration object containing report parameters
        """
        self.config = config
        self.logger = get_formatted_logger(self.__class__.__name__, config)
        self.loader = TableLoader(config)
        self.linkage = LinkageEngine(config, DuplicateKeyPolicy(config.get('duplicate_keys', 'keep-first')))
        self.classifier = ValidityClassifier(config, ValidityCriteria(config))

    def report_time(self) -> datetime:
        """Return the instant against which specimen ages are computed."""
        report_date = self.config.get('report_date')
        if report_date:
            return datetime.fromisoformat(str(report_date))
        return datetime.now()

    def selected_orders(self) -> Optional[List[str]]:
        """Return the taxonomic orders to report on, or None for all orders."""
        orders = self.config.get('orders')
        if not orders:
            return None
        return [order.strip() for order in str(orders).split(',') if order.strip()]

    def run(self) -> Report:
        """
        Run the pipeline on the files named in the configuration.

        :return: A Report with records, summary tables and issues
        """
        return self.build_report(
            Path(self.config.get('nhm_validation')),
            Path(self.config.get('naturalis_validation')),
            Path(self.config.get('lab_sheet')),
            Path(self.config.get('taxonomy_sheet'))
        )

    def build_report(self, nhm_path: Path, naturalis_path: Path, lab_sheet_path: Path,
                     taxonomy_path: Path) -> Report:
        """
        Load, link, classify and summarise.

        :param nhm_path: NHM validation results
        :param naturalis_path: Naturalis validation results
        :param lab_sheet_path: BOLD lab sheet
        :param taxonomy_path: BOLD taxonomy sheet
        :return: A Report
        """
        issues = IssueLog(self.logger)
        lab_sheet = self.loader.load_lab_sheet(lab_sheet_path, self.report_time(), issues)
        taxonomy = self.loader.load_taxonomy(taxonomy_path, issues)
        lab_sheet, taxonomy = self.linkage.prepare_metadata(lab_sheet, taxonomy, issues)

        classified = []
        for institution, path in [(Institution.NHM, nhm_path), (Institution.NATURALIS, naturalis_path)]:
            validation = self.loader.load_validation(path, institution, issues)
            records = self.prepare(validation, institution, lab_sheet, taxonomy, issues)
            classified.append(records)
        records = pd.concat(classified, ignore_index=True)

        tables = self.summarise(records)
        if len(issues):
            self.logger.warning(f"Report completed with {len(issues)} data-quality issues")
        return Report(records, tables, issues)

    def prepare(self, validation: pd.DataFrame, institution: Institution, lab_sheet: pd.DataFrame,
                taxonomy: pd.DataFrame, issues: IssueLog) -> pd.DataFrame:
        """
        Take one institution's validation records through parameter extraction, linkage and
        classification.

        :return: Classified, linked validation records
        """
        extractor = ParameterExtractorFactory.create(self.config, institution)
        with_params = extractor.extract(validation, issues)
        linked = self.linkage.link(with_params, lab_sheet, taxonomy, issues)
        return self.classifier.classify(linked)

    def summarise(self, records: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """
        Compute the summary tables of the report.

        :param records: Classified validation records of both institutions
        :return: Named summary tables
        """
        min_specimens = self.config.get('min_specimens')
        biological = records[~records['is_control']]

        tables = {
            'process_level_summary': summarise_success(biological, ['institution']),
        }

        breakdown = self.classifier.parameter_breakdown(biological)
        tables['param_validation'] = breakdown
        tables['optimal_params'] = optimal_parameters(breakdown)

        if ORDER_COLUMN in biological.columns:
            orders = self.selected_orders()
            where = None
            if orders is not None:
                where = lambda df: df[ORDER_COLUMN].isin(orders)
            tables['success_by_order'] = summarise_success(
                biological, ['institution', ORDER_COLUMN], where=where, min_specimens=min_specimens)
        else:
            self.logger.warning(f"Taxonomy has no {ORDER_COLUMN} column, skipping success by order")

        aged = biological.assign(age_bin=bin_ages(
            biological['specimen_age_years'],
            width=self.config.get('age_bin_width', 20),
            upper=self.config.get('age_max', 200)
        ))
        tables['success_by_age'] = summarise_success(aged, ['institution', 'age_bin'], min_specimens=min_specimens)
        return tables

    def write_results(self, report: Report, output_dir: Path, render_plots: bool = True) -> List[Path]:
        """
        Write the summary tables, the CSV export, the issue list and, optionally, plots.

        :param report: The report to write
        :param output_dir: Directory to write to, created if needed
        :param render_plots: Whether to render plots
        :return: Paths of all files written
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        written = []

        for name, table in report.tables.items():
            if name == 'param_validation':
                path = output_dir / CSV_EXPORT
                table.to_csv(path, index=False)
            else:
                path = output_dir / f"{name}.tsv"
                table.to_csv(path, sep='\t', index=False)
            written.append(path)

        issues_path = output_dir / 'issues.tsv'
        report.issues.to_frame().to_csv(issues_path, sep='\t', index=False)
        written.append(issues_path)

        if render_plots:
            breakdown = report['param_validation']
            if not breakdown.empty:
                written.append(plots.validation_heatmap(breakdown, output_dir / 'validation_param_heatmap.png'))
                written.append(plots.failure_breakdown(breakdown, output_dir / 'validation_failure_breakdown.png'))
            if not report['success_by_age'].empty:
                written.append(plots.success_by_age(report['success_by_age'], output_dir / 'success_by_age.png'))

        for path in written:
            self.logger.info(f"Wrote {path}")
        return written
