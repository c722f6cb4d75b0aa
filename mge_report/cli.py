import argparse
import logging
import sys
import traceback

from nbitk.logger import get_formatted_logger

from .config.schema_config import SchemaConfig
from .orchestrator import ReportOrchestrator, Report


class ReportCLI:
    """
    Command Line Interface for the MGE validation report.

    The overall program flow is as follows:
    1. Initialize schema-driven configuration
    2. Parse command line arguments using the schema-generated parser
    3. Update configuration with command line arguments and check required fields
    4. Instantiate the orchestrator with the loaded configuration
    5. Run the orchestrator to obtain the report tables
    6. Print the headline tables to stdout and write all outputs to the output directory
    """

    def __init__(self, argv=None) -> None:
        """
        Initialize the ReportCLI.

        :param argv: Command line arguments, defaults to sys.argv[1:]
        """
        self.config: SchemaConfig = SchemaConfig()
        self.args: argparse.Namespace = self.parse_args(argv)
        self.logger: logging.Logger = get_formatted_logger(__name__, self.config)
        self.logger.info("Starting MGE validation report")

    def create_parser(self) -> argparse.ArgumentParser:
        """
        Create and configure the argument parser using the schema.

        :return: Configured ArgumentParser
        """
        parser = argparse.ArgumentParser(
            description="""MGE Validation Report

This tool summarises barcode validation results of the MGE parameter sweeps run at NHM and
Naturalis. Each validation attempt is linked to its specimen through the BOLD lab sheet and
taxonomy sheet, and is classified as valid when it has at least the minimum length, no more
than the maximum number of ambiguous bases, no stop codons, no processing error, and the
expected identification among the observed taxa.

Per institution, the report gives the share of specimens with at least one valid attempt,
validity and failure rates per parameter combination, the best parameter combination, and
success per taxonomic order and specimen age.

Configuration parameters can be set using command line arguments. For nested parameters, use
the format: --section-name key=value
""",
            formatter_class=argparse.RawTextHelpFormatter
        )
        self.config.populate_argparse(parser)
        return parser

    def parse_args(self, argv=None) -> argparse.Namespace:
        """
        Parse command line arguments using the schema-generated parser.

        :param argv: Command line arguments
        :return: Parsed command line arguments.
        """
        parser = self.create_parser()
        args = parser.parse_args(argv)

        try:
            self.config.update_from_args(args)
            self.config.validate_required_fields()
        except Exception as e:
            parser.error(f"Configuration validation failed: {e}")

        return args

    def run(self) -> Report:
        """Run the report."""
        try:
            orchestrator = ReportOrchestrator(self.config)
            report = orchestrator.run()

            print("Specimen-level validation success by institution:")
            print(report['process_level_summary'].to_string(index=False))
            print()
            print("Optimal parameter combinations by institution:")
            print(report['optimal_params'].to_string(index=False))

            orchestrator.write_results(report, self.config.get('output_dir'), self.config.get('plots', True))
            return report

        except Exception as e:
            self.logger.error(f"Report generation failed: {e}")
            stack_trace = traceback.format_exc()
            self.logger.error(stack_trace)
            sys.exit(1)


def main():
    """Main entry point for the CLI."""
    cli = ReportCLI()
    cli.run()


if __name__ == "__main__":
    main()
