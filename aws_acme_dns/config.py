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
"""TOML configuration file handling."""
import dataclasses
import pathlib
import tomllib
from typing import Dict, Optional, Tuple

from . import errors
from .coordinator import DEFAULT_MAX_CONCURRENCY
from .propagation import DEFAULT_PROPAGATION_TIMEOUT
from .session import LETSENCRYPT_DIRECTORY

DEFAULT_CONFIG_FILE = "acme.toml"
DEFAULT_ACCOUNT_FILE = "account.json"


@dataclasses.dataclass(frozen=True)
class CertificateRequest:
    """A CSR to issue a certificate for and where to write the certificate."""
    csr_file: str
    output: str


@dataclasses.dataclass(frozen=True)
class Config:
    """
    The parsed configuration file. Relative file paths are resolved against the directory of the configuration
    file so the tool can be run from anywhere.
    """
    # pylint: disable=too-many-instance-attributes
    account_file: str = DEFAULT_ACCOUNT_FILE
    directory: str = LETSENCRYPT_DIRECTORY
    nameservers: Optional[Tuple[str, ...]] = None
    cname: Dict[str, str] = dataclasses.field(default_factory=dict)
    certificate_requests: Tuple[CertificateRequest, ...] = ()
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    propagation_timeout: int = DEFAULT_PROPAGATION_TIMEOUT

    @classmethod
    def from_str(cls, toml_str: str, base_dir: str = ".") -> 'Config':
        """
        Parses the configuration from a TOML string.

        Raises:
            aws_acme_dns.errors.InvalidConfig: When the TOML is malformed or a value has the wrong type.
        """
        try:
            data = tomllib.loads(toml_str)
        except tomllib.TOMLDecodeError as err:
            raise errors.InvalidConfig(f"Invalid configuration file: {err}") from err

        base = pathlib.Path(base_dir)

        def path(value: str) -> str:
            # Object store URIs are passed through untouched
            if "://" in value:
                return value
            return str(base.joinpath(value))

        requests = []
        for index, request in enumerate(_typed(data, "certificate_requests", list, [])):
            if not isinstance(request, dict):
                raise errors.InvalidConfig(f"certificate_requests[{index}] must be a table.")
            csr_file = _typed(request, "csr_file", str)
            output = _typed(request, "output", str)
            if csr_file is None or output is None:
                raise errors.InvalidConfig(f"certificate_requests[{index}] needs both 'csr_file' and 'output'.")
            requests.append(CertificateRequest(csr_file=path(csr_file), output=path(output)))

        cname = _typed(data, "cname", dict, {})
        if not all(isinstance(value, str) for value in cname.values()):
            raise errors.InvalidConfig("Every [cname] value must be a hostname string.")

        nameservers = _typed(data, "nameservers", list)
        max_concurrency = _typed(data, "max_concurrency", int, DEFAULT_MAX_CONCURRENCY)
        if max_concurrency < 1:
            raise errors.InvalidConfig("'max_concurrency' must be at least 1.")

        return cls(
            account_file=path(_typed(data, "account_file", str, DEFAULT_ACCOUNT_FILE)),
            directory=_typed(data, "directory", str, LETSENCRYPT_DIRECTORY),
            nameservers=tuple(nameservers) if nameservers else None,
            cname={key.lower(): value.lower() for key, value in cname.items()},
            certificate_requests=tuple(requests),
            max_concurrency=max_concurrency,
            propagation_timeout=_typed(data, "propagation_timeout", int, DEFAULT_PROPAGATION_TIMEOUT),
        )

    @classmethod
    def from_file(cls, config_file: str = DEFAULT_CONFIG_FILE) -> 'Config':
        """
        Reads the configuration file.

        Raises:
            aws_acme_dns.errors.InvalidPath: When the configuration file does not exist.
        """
        filepath = pathlib.Path(config_file).absolute()
        if not filepath.is_file():
            raise errors.InvalidPath(f"No configuration file found at '{filepath}'")

        with open(filepath, 'r', encoding="utf-8") as toml_file:
            return cls.from_str(toml_file.read(), base_dir=str(filepath.parent))


def _typed(data: dict, key: str, expected: type, default=None):
    value = data.get(key, default)
    # bool is a subclass of int, it is never a valid count or timeout
    if value is not None and (not isinstance(value, expected) or (expected is int and isinstance(value, bool))):
        raise errors.InvalidConfig(f"'{key}' must be of type '{expected.__name__}'.")
    return value
