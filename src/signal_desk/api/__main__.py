"""Allow running the API as: python -m signal_desk.api [--config path] [--port N]."""

import argparse

from signal_desk.api.runner import main

parser = argparse.ArgumentParser(description="Signal desk HTTP API")
parser.add_argument("--config", default=None, help="Path to config.yaml")
parser.add_argument("--host", default="0.0.0.0")
parser.add_argument("--port", type=int, default=8000)
args = parser.parse_args()
main(config_path=args.config, host=args.host, port=args.port)
