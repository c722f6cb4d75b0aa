from enum import Enum

# Constants passed around through the application. User input is anchored on
# config/schema.yaml and validated by schema_config.py; the orchestrator
# translates it into the values defined here. Deeper classes should not deal
# with raw config strings.

# Sequence identifiers look like BGE00123-24_r_1.3_s_100: the process ID is
# everything before the first separator.
PROCESS_ID_SEPARATOR = '_'

# Negative controls are flagged by this suffix on the process ID
CONTROL_SUFFIX = '-NC'

# Markers after which the Naturalis pipeline embeds the MGE parameters
R_MARKER = '_r_'
S_MARKER = '_s_'

# Tokens that mean "no value" in the source tables
NULL_TOKENS = {'', 'NA', 'None', 'null'}


class Institution(Enum):
    NHM = "NHM"
    NATURALIS = "Naturalis"


class DuplicateKeyPolicy(Enum):
    KEEP_FIRST = "keep-first"
    ERROR = "error"


# Columns the validation tables must carry
REQUIRED_VALIDATION_COLUMNS = [
    'sequence_id',
    'nuc_basecount',
    'ambig_basecount',
    'stop_codons',
    'error',
    'identification',
    'obs_taxon',
]

# Columns coerced to numbers when present
NUMERIC_VALIDATION_COLUMNS = [
    'nuc_basecount',
    'ambig_basecount',
    'stop_codons',
    'nuc_full_basecount',
    'ambig_full_basecount',
]

# Lab sheet (BOLD export) columns
PROCESS_ID_COLUMN = 'Process ID'
SAMPLE_ID_COLUMN = 'Sample ID'
COLLECTION_DATE_COLUMN = 'Collection Date'

# Lab sheet columns carried along when present
LAB_PASSTHROUGH_COLUMNS = [
    'Institution Storing',
    'COI-5P Seq. Length',
    'Plate',
    'Well',
]

# First and last rank columns of the taxonomy sheet, everything in between is kept
FIRST_RANK_COLUMN = 'Phylum'
LAST_RANK_COLUMN = 'Species'

DAYS_PER_YEAR = 365.25
