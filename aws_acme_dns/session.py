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
"""ACME account handling and the per-order ACME session built on the `acme` client library."""
import json
import logging
import os
import pathlib
from typing import List, Optional, Sequence, Tuple, Union

import josepy as jose
import validators
from acme import challenges
from acme import client
from acme import messages
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import rsa

from . import errors

logger = logging.getLogger(__name__)

USER_AGENT = 'aws_acme_dns/1.0.0'
LETSENCRYPT_DIRECTORY = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING_DIRECTORY = "https://acme-staging-v02.api.letsencrypt.org/directory"


class AcmeAccount:
    """
    A registered ACME account: its key, its registration resource and the directory it is registered with. The
    account itself is immutable and shared; every order gets its own `AcmeSession` because the underlying network
    client keeps per-connection nonce state.
    """

    def __init__(
            self,
            account_key: jose.JWKRSA,
            account: messages.RegistrationResource,
            directory: str = LETSENCRYPT_DIRECTORY,
            verify_ssl: bool = True
    ) -> None:
        self.account_key = account_key
        self.account = account
        self.directory = directory
        self.verify_ssl = verify_ssl

    @classmethod
    def new_account(
            cls,
            email: Union[str, Sequence[str]],
            directory: str = LETSENCRYPT_DIRECTORY,
            verify_ssl: bool = True
    ) -> 'AcmeAccount':
        """
        Registers a new ACME account at the `directory` URL. By running this method, you are agreeing to the ACME
        server's terms of service.

        Args:
            email (str, list): The contact email address of the account, or a list of contact addresses.
            directory (str): The ACME directory URL to register with.
            verify_ssl (bool): Verify the SSL certificate of the ACME server when making requests.

        Returns:
            aws_acme_dns.session.AcmeAccount: The registered account.

        Raises:
            aws_acme_dns.errors.InvalidEmail: When no address is given or any address is not a valid email address.
        """
        emails = [email] if isinstance(email, str) else list(email)
        if not emails:
            raise errors.InvalidEmail("At least one contact email address is required.")
        for address in emails:
            if not address or not validators.email(address):
                raise errors.InvalidEmail(f"Value '{address}' is not a valid email address.")

        # Generate a new RSA2048 account key
        rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048, backend=default_backend())
        account_key = jose.JWKRSA(key=rsa_key)

        net = client.ClientNetwork(account_key, user_agent=USER_AGENT, verify_ssl=verify_ssl)
        directory_obj = messages.Directory.from_json(net.get(directory).json())
        acme_client = client.ClientV2(directory_obj, net=net)

        registration = messages.NewRegistration.from_data(email=",".join(emails), terms_of_service_agreed=True)
        account = acme_client.new_account(registration)
        logger.info("Registered ACME account %s", account.uri)

        return cls(account_key, account, directory=directory, verify_ssl=verify_ssl)

    def export_account(self) -> str:
        """
        Exports the account as a JSON string that can be re-imported with `load_account()`.

        Returns:
            str: The account encoded as a JSON string.
        """
        acct_data = {
            'account': self.account.to_json(),
            'account_key': self.account_key.json_dumps(),
            'directory': self.directory,
            'verify_ssl': self.verify_ssl,
        }

        return json.dumps(acct_data)

    def export_account_to_file(self, path: str) -> None:
        """
        Writes the account JSON to a new file readable by its owner only.

        Raises:
            aws_acme_dns.errors.ConfigExists: When a file already exists at `path`.
            aws_acme_dns.errors.InvalidPath: When the parent directory does not exist.
        """
        filepath = pathlib.Path(path).absolute()

        if filepath.exists():
            raise errors.ConfigExists(f"Account file '{filepath}' already exists.")
        if not filepath.parent.is_dir():
            raise errors.InvalidPath(f"Directory at '{filepath.parent}' does not exist.")

        # Owner read/write only, the file holds the account private key
        descriptor = os.open(str(filepath), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with open(descriptor, 'w', encoding="utf-8") as account_file:
            account_file.write(self.export_account())

    @staticmethod
    def load_account(json_data: str) -> 'AcmeAccount':
        """
        Loads an existing account from a JSON data string created by the `export_account()` method.

        Raises:
            aws_acme_dns.errors.InvalidAccount: When the JSON does not describe an account.
        """
        try:
            acct_data = json.loads(json_data)
            account = messages.RegistrationResource.json_loads(json.dumps(acct_data['account']))
            account_key = jose.JWKRSA.json_loads(acct_data['account_key'])
        except (ValueError, KeyError, TypeError, jose.DeserializationError) as err:
            raise errors.InvalidAccount(f"Unable to load ACME account: {err}") from err

        return AcmeAccount(
            account_key,
            account,
            directory=acct_data.get('directory', LETSENCRYPT_DIRECTORY),
            verify_ssl=acct_data.get('verify_ssl', True),
        )

    @staticmethod
    def load_account_from_file(filepath: str) -> 'AcmeAccount':
        """
        Loads an existing account from a JSON file created by the `export_account_to_file()` method.

        Raises:
            aws_acme_dns.errors.InvalidPath: When the JSON file path does not exist.
        """
        filepath = pathlib.Path(filepath).absolute()

        if not filepath.exists():
            raise errors.InvalidPath(f"No JSON account file found at '{filepath}'")

        with open(filepath, 'r', encoding="utf-8") as json_file:
            return AcmeAccount.load_account(json_file.read())

    def session(self) -> 'AcmeSession':
        """Opens a new ACME session for this account, with its own network client."""
        net = client.ClientNetwork(
            self.account_key, account=self.account, user_agent=USER_AGENT, verify_ssl=self.verify_ssl
        )
        directory_obj = messages.Directory.from_json(net.get(self.directory).json())
        return AcmeSession(client.ClientV2(directory_obj, net=net))


class AcmeSession:
    """The ACME operations a single order needs, on top of `acme.client.ClientV2`."""

    def __init__(self, acme_client: client.ClientV2) -> None:
        self.acme_client = acme_client

    def submit_order(self, csr_pem: bytes) -> messages.OrderResource:
        """Submits a new order for every DNS identifier of the CSR."""
        order = self.acme_client.new_order(csr_pem)
        logger.info("Submitted ACME order %s", order.uri)
        return order

    @staticmethod
    def authorizations(order: messages.OrderResource) -> List[messages.AuthorizationResource]:
        """The authorizations fetched along with the order."""
        return list(order.authorizations)

    def key_authorization(self, challb: messages.ChallengeBody) -> Tuple[challenges.ChallengeResponse, str]:
        """Returns the challenge response and the DNS-01 TXT value (the key authorization digest)."""
        return challb.response_and_validation(self.acme_client.net.key)

    def mark_ready(self, challb: messages.ChallengeBody, response: challenges.ChallengeResponse) -> None:
        """Tells the ACME server the challenge is ready to be validated."""
        self.acme_client.answer_challenge(challb, response)

    def order_status(self, order: messages.OrderResource) -> messages.Status:
        """Re-reads the order and returns its current status."""
        return self._refresh(order).status

    def finalize(self, order: messages.OrderResource, csr_pem: bytes) -> messages.OrderResource:
        """Submits the CSR to finalize the order."""
        return self.acme_client.begin_finalization(order.update(csr_pem=csr_pem))

    def certificate(self, order: messages.OrderResource) -> Optional[str]:
        """
        Downloads the issued certificate chain.

        Returns:
            str: The PEM bundle, or None while the certificate is not available yet.

        Raises:
            aws_acme_dns.errors.AcmeChallengeIncomplete: When the order became invalid.
        """
        body = self._refresh(order)
        if body.status == messages.STATUS_INVALID:
            raise errors.AcmeChallengeIncomplete(f"ACME order {order.uri} became invalid: {body.error}")
        if body.status != messages.STATUS_VALID or not body.certificate:
            return None

        return self._post_as_get(body.certificate).text

    def _refresh(self, order: messages.OrderResource) -> messages.Order:
        return messages.Order.from_json(self._post_as_get(order.uri).json())

    def _post_as_get(self, url: str):
        # POST-as-GET, see RFC 8555 section 6.3
        return self.acme_client.net.post(url, None, new_nonce_url=self.acme_client.directory.newNonce)
