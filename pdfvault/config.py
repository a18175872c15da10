"""
YAML configuration for pdfvault.

A configuration file has three optional top-level sections::

    logging:
      root-level: INFO
      root-output: stderr
      by-module:
        pdfvault.pdf_utils.crypt:
          level: DEBUG
    pdf-version: '1.7ext3'
    encryption:
      owner-password: secret
      user-password: public
      permissions:
        printing: highResolution
        copying: true
"""

import enum
import logging
import sys
from dataclasses import dataclass
from typing import Dict, Optional, Union

import yaml

from pdfvault.pdf_utils.config_utils import (
    ConfigurationError,
    check_config_keys,
)
from pdfvault.pdf_utils.crypt.permissions import SecurityOptions
from pdfvault.pdf_utils.graph import PdfHeader, PdfObjectGraph
from pdfvault.pdf_utils.misc import get_and_apply

__all__ = [
    'StdLogOutput', 'LogConfig', 'PdfVaultConfig', 'parse_logging_config',
    'parse_config', 'logging_setup', 'DEFAULT_PDF_VERSION',
]

DEFAULT_ROOT_LOGGER_LEVEL = logging.INFO
DEFAULT_PDF_VERSION = '1.7'
LOG_FORMAT_STRING = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StdLogOutput(enum.Enum):
    STDERR = enum.auto()
    STDOUT = enum.auto()


@dataclass(frozen=True)
class LogConfig:
    level: Union[int, str]
    """
    Logging level, should be one of the levels defined in the logging module.
    """

    output: Union[StdLogOutput, str]
    """
    Name of the output file, or a standard one.
    """

    @staticmethod
    def parse_output_spec(spec) -> Union[StdLogOutput, str]:
        if not isinstance(spec, str):
            raise ConfigurationError(
                "Log output must be specified as a string."
            )
        spec_l = spec.lower()
        if spec_l == 'stderr':
            return StdLogOutput.STDERR
        elif spec_l == 'stdout':
            return StdLogOutput.STDOUT
        else:
            return spec


def _retrieve_log_level(settings_dict, key, default=None) -> Union[int, str]:
    try:
        level_spec = settings_dict[key]
    except KeyError:
        if default is not None:
            return default
        raise ConfigurationError(
            f"Logging config for '{key}' does not define a log level."
        )
    if not isinstance(level_spec, (int, str)):
        raise ConfigurationError(
            f"Log levels must be int or str, not {type(level_spec)}"
        )
    return level_spec


def parse_logging_config(log_config_spec) -> Dict[Optional[str], LogConfig]:
    if not isinstance(log_config_spec, dict):
        raise ConfigurationError('logging config should be a dictionary')

    root_logger_level = _retrieve_log_level(
        log_config_spec, 'root-level', default=DEFAULT_ROOT_LOGGER_LEVEL
    )

    root_logger_output = get_and_apply(
        log_config_spec, 'root-output', LogConfig.parse_output_spec,
        default=StdLogOutput.STDERR
    )

    log_config = {None: LogConfig(root_logger_level, root_logger_output)}

    logging_by_module = log_config_spec.get('by-module', {})
    if not isinstance(logging_by_module, dict):
        raise ConfigurationError('logging.by-module should be a dict')

    for module, module_logging_settings in logging_by_module.items():
        if not isinstance(module, str):
            raise ConfigurationError(
                "Keys in logging.by-module should be strings"
            )
        if not isinstance(module_logging_settings, dict):
            raise ConfigurationError(
                f"Logging config for '{module}' should be a dictionary"
            )
        level_spec = _retrieve_log_level(module_logging_settings, 'level')
        output_spec = get_and_apply(
            module_logging_settings, 'output', LogConfig.parse_output_spec,
            default=StdLogOutput.STDERR
        )
        log_config[module] = LogConfig(level=level_spec, output=output_spec)

    return log_config


def logging_setup(log_configs: Dict[Optional[str], LogConfig]):
    """
    Attach handlers to the loggers named in a logging configuration.
    """
    for module, log_config in log_configs.items():
        cur_logger = logging.getLogger(module)
        cur_logger.setLevel(log_config.level)
        handler: logging.Handler
        if log_config.output == StdLogOutput.STDOUT:
            handler = logging.StreamHandler(sys.stdout)
        elif log_config.output == StdLogOutput.STDERR:
            handler = logging.StreamHandler()
        else:
            handler = logging.FileHandler(log_config.output)
        handler.setFormatter(logging.Formatter(LOG_FORMAT_STRING))
        cur_logger.addHandler(handler)


@dataclass
class PdfVaultConfig:
    log_config: Dict[Optional[str], LogConfig]
    pdf_version: str = DEFAULT_PDF_VERSION
    encryption: Optional[SecurityOptions] = None

    def create_graph(self, **security_kwargs) -> PdfObjectGraph:
        """
        Create an empty object graph declaring the configured version, with
        a security handler attached if encryption is configured.

        :param security_kwargs:
            Passed to :meth:`.PdfObjectGraph.set_security`.
        """
        graph = PdfObjectGraph.create()
        graph.header = PdfHeader.from_version_string(self.pdf_version)
        if self.encryption is not None:
            graph.set_security(self.encryption, **security_kwargs)
        return graph


def parse_config(yaml_str) -> PdfVaultConfig:
    config_dict = yaml.safe_load(yaml_str) or {}
    check_config_keys(
        'PdfVaultConfig', ('logging', 'pdf-version', 'encryption'),
        config_dict
    )
    log_config = parse_logging_config(config_dict.get('logging', {}))

    pdf_version = str(config_dict.get('pdf-version', DEFAULT_PDF_VERSION))
    try:
        PdfHeader.from_version_string(pdf_version)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    encryption = get_and_apply(
        config_dict, 'encryption', SecurityOptions.from_config
    )
    return PdfVaultConfig(
        log_config=log_config, pdf_version=pdf_version, encryption=encryption
    )
