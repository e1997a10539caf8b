# Copyright 2025 Jared Hendrickson
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Command line entry point: `aws-acme-dns register` and `aws-acme-dns update`."""
import argparse
import logging
import pathlib
import sys
from typing import List, Optional

import aws_acme_dns
from aws_acme_dns import errors
from aws_acme_dns.config import DEFAULT_ACCOUNT_FILE, DEFAULT_CONFIG_FILE, Config
from aws_acme_dns.session import AcmeAccount

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser."""
    parser = argparse.ArgumentParser(
        prog="aws-acme-dns",
        description="Issue ACME certificates with DNS-01 challenges on AWS Lightsail DNS and Route53.",
    )
    parser.add_argument("-c", "--config-file", default=DEFAULT_CONFIG_FILE, metavar="CONFIG FILE",
                        help="read configuration from file (default: %(default)s)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every DNS and ACME poll")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register = subparsers.add_parser("register", help="create a new ACME account")
    register.add_argument("--agree-tos", action="store_true", required=True,
                          help="agree to the ACME server's terms of service")
    register.add_argument("--email", required=True, nargs="+", metavar="EMAIL",
                          help="contact email address(es) of the account")
    register.add_argument("--directory", help="ACME server directory URL (default: the configured directory)")

    subparsers.add_parser("update", help="issue every certificate listed in the configuration file")
    return parser


def _registration_config(config_file: str) -> Config:
    """Reads the configuration for registration, which may run before a configuration file exists."""
    if pathlib.Path(config_file).is_file():
        return Config.from_file(config_file)
    return Config(account_file=str(pathlib.Path(config_file).absolute().parent.joinpath(DEFAULT_ACCOUNT_FILE)))


def main(argv: Optional[List[str]] = None) -> int:
    """Runs the command line interface and returns the process exit status."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "register":
            config = _registration_config(args.config_file)
            account_file = config.account_file
            # Refuse before contacting the ACME server, not after an account was created
            if pathlib.Path(account_file).exists():
                raise errors.ConfigExists(f"Account file '{account_file}' already exists.")
            account = AcmeAccount.new_account(args.email, directory=args.directory or config.directory)
            account.export_account_to_file(account_file)
            logger.info("Account saved to %s", account_file)
        else:
            aws_acme_dns.issue_certificates(Config.from_file(args.config_file))
    except errors.AcmeDnsError as err:
        logger.error("%s", err.message)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
