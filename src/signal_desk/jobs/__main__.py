"""Allow running the scheduler as: python -m signal_desk.jobs [--config path]."""

import argparse

from signal_desk.jobs.scheduler import main

parser = argparse.ArgumentParser(description="Signal job scheduler")
parser.add_argument("--config", default=None, help="Path to config.yaml")
args = parser.parse_args()
main(config_path=args.config)
