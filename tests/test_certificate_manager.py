# tests/test_certificate_manager.py

from __future__ import annotations

import ssl
from pathlib import Path

from cryptography import x509

from core.certificate_manager import CertificateManager


def test_self_signed_certificate_lifecycle(tmp_path: Path) -> None:
    manager = CertificateManager(certs_dir=tmp_path, hostnames=["tasks.local", "127.0.0.1"])

    assert not manager.check_certificates_exist()
    assert manager.get_certificate_days_remaining() == -1

    assert manager.ensure_certificates_exist()
    assert manager.cert_path == tmp_path / "taskboard.crt"
    assert manager.check_certificates_exist()
    assert 363 <= manager.get_certificate_days_remaining() <= 365

    cert = x509.load_pem_x509_certificate(manager.cert_path.read_bytes())
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["tasks.local"]
    assert [str(ip) for ip in san.get_values_for_type(x509.IPAddress)] == ["127.0.0.1"]

    assert isinstance(manager.create_ssl_context(), ssl.SSLContext)


def test_existing_certificate_is_reused(tmp_path: Path) -> None:
    manager = CertificateManager(certs_dir=tmp_path)
    manager.generate_self_signed_certificate()
    before = manager.cert_path.read_bytes()

    assert manager.ensure_certificates_exist()
    assert manager.cert_path.read_bytes() == before
