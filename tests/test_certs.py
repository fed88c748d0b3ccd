"""Tests for the development TLS certificate."""

import ssl

from cryptography import x509

from devproxy.certs import ensure_certificate, ssl_context


class TestCertificate:

    def test_generates_certificate(self, tmp_path):
        cert_file, key_file = ensure_certificate("localhost", tmp_path)
        assert cert_file.exists() and key_file.exists()
        cert = x509.load_pem_x509_certificate(cert_file.read_bytes())
        names = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert names.get_values_for_type(x509.DNSName) == ["localhost"]

    def test_reuses_existing_certificate(self, tmp_path):
        cert_file, _ = ensure_certificate("localhost", tmp_path)
        first = cert_file.read_bytes()
        ensure_certificate("localhost", tmp_path)
        assert cert_file.read_bytes() == first

    def test_ip_address_host(self, tmp_path):
        cert_file, _ = ensure_certificate("127.0.0.1", tmp_path)
        cert = x509.load_pem_x509_certificate(cert_file.read_bytes())
        names = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert [str(ip) for ip in names.get_values_for_type(x509.IPAddress)] == ["127.0.0.1"]

    def test_replaces_unreadable_certificate(self, tmp_path):
        cert_file, key_file = ensure_certificate("localhost", tmp_path)
        cert_file.write_text("garbage")
        ensure_certificate("localhost", tmp_path)
        x509.load_pem_x509_certificate(cert_file.read_bytes())

    def test_ssl_context(self, tmp_path):
        ctx = ssl_context("localhost", tmp_path)
        assert isinstance(ctx, ssl.SSLContext)
