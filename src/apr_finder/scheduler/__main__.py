"""Allow running the collector as: python -m apr_finder.scheduler [--config path]."""

import argparse

from apr_finder.scheduler.runner import main

parser = argparse.ArgumentParser(description="APR collection and alert service")
parser.add_argument("--config", default=None, help="Path to config.yaml")
args = parser.parse_args()
main(config_path=args.config)
