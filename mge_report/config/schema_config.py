import argparse
import importlib.resources
from pathlib import Path
from typing import Any, Dict

import yaml
from nbitk.config import Config

# Keys of a schema entry that describe the entry itself rather than nested parameters
STANDARD_KEYS = {'type', 'default', 'choices', 'required', 'help', 'min'}
VALID_TYPES = ['str', 'int', 'float', 'bool', 'Path']


class ValidationError(Exception):
    """Exception raised when configuration validation fails."""
    pass


class SchemaConfig(Config):
    """
    Schema-driven configuration for the report.

    The packaged schema.yaml defines every configuration parameter with its type, default,
    choices and help text. From it, this class initializes defaults, validates and converts
    values as they are set, populates an argparse parser, and checks that required values are
    present. Nested parameters live in containers and are addressed with dot notation.

    Examples:
        >>> config = SchemaConfig()
        >>> config.get('criteria.min_length')
        500
        >>> config.set('criteria.min_length', '650')
        >>> config.get('criteria.min_length')
        650
    """

    def __init__(self, schema_package: str = "mge_report.config"):
        """
        Initialize the schema-driven configuration.

        :param schema_package: Package containing the schema.yaml file
        """
        super().__init__()
        self.schema_package = schema_package
        self.schema: Dict[str, Any] = {}
        self._load_schema()
        self._initialize_with_defaults()

    def _load_schema(self) -> None:
        """Load the schema from the package resources."""
        resource = importlib.resources.files(self.schema_package).joinpath("schema.yaml")
        try:
            with resource.open('r', encoding='utf-8') as f:
                self.schema = yaml.safe_load(f)
        except FileNotFoundError:
            raise FileNotFoundError(f"Schema file not found in package {self.schema_package}")
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing schema file: {e}")

        for key, spec in self.schema.items():
            if not isinstance(spec, dict):
                raise ValidationError(f"Schema entry '{key}' must be a dictionary")
            if self._is_container(spec):
                if 'type' in spec:
                    raise ValidationError(f"Container schema entry '{key}' should not have a 'type' field")
                for nested_key, nested_spec in self._nested_items(spec):
                    self._validate_parameter_schema(f"{key}.{nested_key}", nested_spec)
            else:
                self._validate_parameter_schema(key, spec)

    @staticmethod
    def _validate_parameter_schema(param_key: str, spec: Dict[str, Any]) -> None:
        """Validate a parameter schema entry."""
        if 'type' not in spec:
            raise ValidationError(f"Parameter schema entry '{param_key}' missing required 'type' field")
        if spec['type'] not in VALID_TYPES:
            raise ValidationError(f"Parameter schema entry '{param_key}' has invalid type '{spec['type']}'. "
                                  f"Valid types: {VALID_TYPES}")
        if 'choices' in spec and not isinstance(spec['choices'], list):
            raise ValidationError(f"Parameter schema entry '{param_key}' choices must be a list")
        if 'min' in spec and spec['type'] not in ('int', 'float'):
            raise ValidationError(f"Parameter schema entry '{param_key}' has a min but is not numeric")

    @staticmethod
    def _is_container(spec: Dict[str, Any]) -> bool:
        """A schema entry is a container if it holds nested entries that have a type."""
        return any(isinstance(value, dict) and 'type' in value
                   for key, value in spec.items() if key not in STANDARD_KEYS)

    @staticmethod
    def _nested_items(spec: Dict[str, Any]):
        return [(key, value) for key, value in spec.items()
                if key not in STANDARD_KEYS and isinstance(value, dict)]

    def _initialize_with_defaults(self) -> None:
        """Initialize configuration with default values from schema."""
        self.config_data = {}
        self.initialized = True

        for key, spec in self.schema.items():
            if self._is_container(spec):
                self.config_data[key] = {
                    nested_key: nested_spec['default']
                    for nested_key, nested_spec in self._nested_items(spec) if 'default' in nested_spec
                }
            elif 'default' in spec:
                self.config_data[key] = spec['default']

    def load_config(self, config_path: str) -> None:
        """
        Loading external configuration files is disabled, the schema defines everything.

        :raises ValidationError: Always
        """
        raise ValidationError("Loading external configuration files is not supported. "
                              "Use command line arguments or set() method instead.")

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value with validation.

        :param key: Configuration key (supports dot notation for nested keys)
        :param value: Configuration value
        :raises ValidationError: If key is unknown or value is invalid
        """
        if '.' in key:
            main_key, nested_key = key.split('.', 1)
            if main_key not in self.schema:
                raise ValidationError(f"Unknown configuration key: {main_key}")
            if not self._is_container(self.schema[main_key]):
                raise ValidationError(f"Key '{main_key}' does not support nested configuration")
            if nested_key in STANDARD_KEYS or nested_key not in self.schema[main_key]:
                raise ValidationError(f"Unknown nested configuration key: {key}")

            nested_spec = self.schema[main_key][nested_key]
            self.config_data.setdefault(main_key, {})[nested_key] = self._validate_value(key, value, nested_spec)
        else:
            if key not in self.schema:
                raise ValidationError(f"Unknown configuration key: {key}")
            self.config_data[key] = self._validate_value(key, value, self.schema[key])

    @staticmethod
    def _validate_value(key: str, value: Any, spec: Dict[str, Any]) -> Any:
        """
        Validate a configuration value against its schema specification.

        :param key: Configuration key name
        :param value: Value to validate
        :param spec: Schema specification for the key
        :return: Validated and converted value
        :raises ValidationError: If validation fails
        """
        if value is None:
            if spec.get('required', False):
                raise ValidationError(f"Required configuration key '{key}' cannot be None")
            return None

        expected_type = spec['type']
        try:
            if expected_type == 'str':
                converted_value = str(value)
            elif expected_type == 'int':
                converted_value = int(value)
            elif expected_type == 'float':
                converted_value = float(value)
            elif expected_type == 'bool':
                if isinstance(value, str):
                    converted_value = value.lower() in ('true', 'yes', '1', 'on')
                else:
                    converted_value = bool(value)
            else:
                converted_value = Path(value)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Cannot convert value '{value}' to type '{expected_type}' "
                                  f"for key '{key}': {e}")

        if 'choices' in spec and converted_value not in spec['choices']:
            raise ValidationError(f"Invalid value '{converted_value}' for key '{key}'. "
                                  f"Valid choices: {spec['choices']}")
        if 'min' in spec and converted_value < spec['min']:
            raise ValidationError(f"Invalid value '{converted_value}' for key '{key}'. "
                                  f"Minimum: {spec['min']}")
        return converted_value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value, supporting dot notation for nested keys.

        :param key: Configuration key (supports dot notation)
        :param default: Default value if key not found
        :return: Configuration value
        """
        if '.' in key:
            main_key, nested_key = key.split('.', 1)
            nested = self.config_data.get(main_key)
            if isinstance(nested, dict):
                return nested.get(nested_key, default)
            return default
        return self.config_data.get(key, default)

    def populate_argparse(self, parser: argparse.ArgumentParser) -> None:
        """
        Populate an argparse parser with arguments from the schema.

        :param parser: ArgumentParser to populate
        """
        for key, spec in self.schema.items():
            if self._is_container(spec):
                self._add_container_argument(parser, key, spec)
            else:
                self._add_argument(parser, key, spec)

    def _add_container_argument(self, parser: argparse.ArgumentParser, main_key: str,
                                spec: Dict[str, Any]) -> None:
        """Add a repeatable --container key=value argument for a container."""
        nested_keys = [key for key, _ in self._nested_items(spec)]

        def key_value(text: str):
            if '=' not in text:
                raise argparse.ArgumentTypeError(f"Expected format: nested_key=value, got: {text}")
            nested_key, nested_value = text.split('=', 1)
            if nested_key not in nested_keys:
                raise argparse.ArgumentTypeError(
                    f"Unknown nested key '{nested_key}' for --{main_key}. Available keys: {nested_keys}")
            return nested_key, nested_value

        parser.add_argument(
            f'--{main_key.replace("_", "-")}',
            type=key_value,
            action='append',
            dest=main_key,
            help=spec.get('help', f'Configuration for {main_key}'),
            metavar='KEY=VALUE'
        )

    @staticmethod
    def _add_argument(parser: argparse.ArgumentParser, key: str, spec: Dict[str, Any]) -> None:
        """Add a single argument to the parser."""
        arg_name = f'--{key.replace("_", "-")}'
        kwargs = {
            'help': spec.get('help', f'Set {key}'),
            'dest': key
        }

        if spec['type'] == 'bool':
            if spec.get('default', False):
                # a flag that defaults to true can only be switched off
                kwargs['action'] = 'store_false'
                arg_name = f'--no-{key.replace("_", "-")}'
            else:
                kwargs['action'] = 'store_true'
        else:
            kwargs['type'] = {'int': int, 'float': float, 'Path': Path}.get(spec['type'], str)
            if 'default' in spec:
                kwargs['default'] = spec['default']
            if spec.get('required', False):
                kwargs['required'] = True
            if 'choices' in spec:
                kwargs['choices'] = spec['choices']

        parser.add_argument(arg_name, **kwargs)

    def update_from_args(self, args: argparse.Namespace) -> None:
        """
        Update configuration from parsed command line arguments.

        :param args: Parsed arguments from argparse
        """
        for key, spec in self.schema.items():
            value = getattr(args, key, None)
            if value is None:
                continue
            if self._is_container(spec):
                for nested_key, nested_value in value:
                    self.set(f'{key}.{nested_key}', nested_value)
            else:
                self.set(key, value)

    def validate_required_fields(self) -> None:
        """
        Validate that all required fields have been set.

        :raises ValidationError: If required fields are missing
        """
        missing_fields = []
        for key, spec in self.schema.items():
            if self._is_container(spec):
                for nested_key, nested_spec in self._nested_items(spec):
                    if nested_spec.get('required', False) and self.get(f'{key}.{nested_key}') is None:
                        missing_fields.append(f'{key}.{nested_key}')
            elif spec.get('required', False) and self.config_data.get(key) is None:
                missing_fields.append(key)

        if missing_fields:
            raise ValidationError(f"Required fields missing: {', '.join(missing_fields)}")
