"""Unit tests and testing tools for the aws_acme_dns package."""

BASE_DOMAIN = "example.com"
TEST_DOMAINS = [f"www.{BASE_DOMAIN}", f"alt1.{BASE_DOMAIN}"]
TEST_EMAIL = f"aws-acme-dns@{BASE_DOMAIN}"
TEST_DIRECTORY = "https://acme.example.net/directory"
