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
import logging
import sys

import aws_acme_dns

logging.basicConfig(level=logging.INFO)

# Register a new account with the Let's Encrypt staging environment, unless one was saved already
try:
    account = aws_acme_dns.AcmeAccount.new_account(
        "user@example.com", directory=aws_acme_dns.session.LETSENCRYPT_STAGING_DIRECTORY
    )
    account.export_account_to_file("account.json")
except aws_acme_dns.errors.ConfigExists:
    account = aws_acme_dns.AcmeAccount.load_account_from_file("account.json")

# Load every zone reachable with the current AWS credentials
registry = aws_acme_dns.ZoneRegistry.load([aws_acme_dns.LightsailProvider(), aws_acme_dns.Route53Provider()])

# Issue a certificate for the hostnames of the CSR. The challenge records are written to the owning zones and
# checked against these nameservers before the ACME server is asked to validate them.
order = aws_acme_dns.AcmeOrder(account.session(), registry, "www.csr", nameservers=["8.8.8.8", "1.1.1.1"])
try:
    order.load_and_check_csr()
    certificate = order.request_certificate()
except aws_acme_dns.errors.AcmeDnsError as err:
    print(f"Failed to issue certificate: {err.message}")
    sys.exit(1)

aws_acme_dns.write_certificate("www.pem", certificate)
print(certificate.fullchain_pem.decode())
