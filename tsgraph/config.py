from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
import yaml

from .ir.tensor import DISPLAY_LIMIT


@dataclass
class LoaderConfig:
    """TorchScript graph loader configuration"""
    # Archive to load
    model: str = ""

    # Config file
    config_file: str = ""

    # Operator schemas; empty means the bundled torchscript-metadata.json
    metadata_path: str = ""

    # Elements printed per tensor before '...'
    display_limit: int = DISPLAY_LIMIT

    # Run forward() symbolically to recover operator nodes
    trace: bool = True

    # Reporting
    report_dir: str = "out/default_run"

    log_level: str = "INFO"

    def update_from_yaml(self, yaml_path: str):
        """Updates config fields from a YAML file."""
        with open(yaml_path, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
        for key, value in yaml_config.items():
            if hasattr(self, key):
                setattr(self, key, value)

    @classmethod
    def from_args(cls, args) -> LoaderConfig:
        """Factory method to create a LoaderConfig from parsed argparse arguments."""
        config = cls()

        # 1. Load from YAML config file if provided
        if getattr(args, 'config', None):
            config.config_file = args.config
            if Path(config.config_file).exists():
                config.update_from_yaml(config.config_file)
            else:
                logging.warning(f"Config file {config.config_file} not found.")

        # 2. Override with command-line arguments
        for key, value in vars(args).items():
            if value is not None and hasattr(config, key):
                setattr(config, key, value)
        return config
